import sys
import uvicorn
import asyncio
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI

try:
    from . import config
    from .errors import BridgeError
    from .service import BrowserService
    from .utils import debug_print
    from .routes import chat, token
except ImportError:
    import config
    from errors import BridgeError
    from service import BrowserService
    from utils import debug_print
    from routes import chat, token


async def _startup_refresh(service: BrowserService) -> None:
    try:
        await service.refresh_token()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        debug_print(f"⚠️ Startup token refresh failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Unit tests install their own fake service and must never launch a real browser.
    if os.environ.get("PYTEST_CURRENT_TEST"):
        yield
        return

    debug_print("🚀 Cursor Bridge Server Starting...")
    cfg = config.get_config()
    service = BrowserService.from_config(cfg)
    app.state.service = service

    try:
        await service.start()
    except BridgeError as e:
        # Fatal for this process: no retry, relay calls fail fast until restart.
        debug_print(f"❌ Browser startup failed, relay calls will be rejected: {e}")

    startup_task = None
    if service.started and cfg.get("refresh_on_startup", True):
        startup_task = asyncio.create_task(_startup_refresh(service))

    try:
        yield
    finally:
        if startup_task is not None and not startup_task.done():
            startup_task.cancel()
            await asyncio.gather(startup_task, return_exceptions=True)
        await service.close()


app = FastAPI(lifespan=lifespan)

app.include_router(chat.router)
app.include_router(token.router)

if __name__ == "__main__":
    # Avoid crashes on Windows consoles with non-UTF8 code pages (e.g., GBK) when printing emojis.
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    cfg = config.get_config()
    port = int(cfg.get("port", 3010))
    print("=" * 60)
    print("🚀 Cursor Bridge Server Starting...")
    print("=" * 60)
    print(f"📍 Chat relay: http://localhost:{port}/api/chat")
    print(f"🔑 Token status: http://localhost:{port}/api/token")
    print("=" * 60)
    uvicorn.run(app, host=str(cfg.get("host", "0.0.0.0")), port=port)
