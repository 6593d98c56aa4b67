import asyncio
import os
import tempfile
import time
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import async_playwright

try:
    from . import constants
    from .errors import BrowserNotInitializedError
    from .utils import debug_print
except ImportError:
    import constants
    from errors import BrowserNotInitializedError
    from utils import debug_print


class BrowserHandle:
    """
    Owns the single external browser process for a service.

    `start()` launches once; afterwards the handle is read-mostly: every operation asks it for its own
    page and gives that page back through `release_page()` (or the `page()` context manager).
    A failed launch is final for this handle. Callers get `BrowserNotInitializedError` until the process restarts.
    """

    def __init__(
        self,
        *,
        engine: str = "chromium",
        headless: bool = True,
        executable_path: Optional[str] = None,
        user_data_dir: Optional[str] = None,
        user_agent: str = constants.DEFAULT_USER_AGENT,
    ):
        self.engine = engine if engine in ("chromium", "camoufox") else "chromium"
        self.headless = bool(headless)
        self.executable_path = executable_path or None
        self.user_data_dir = user_data_dir or None
        self.user_agent = user_agent or constants.DEFAULT_USER_AGENT

        self._context = None
        self._stack: Optional[AsyncExitStack] = None
        self._start_lock = asyncio.Lock()
        self._start_error: Optional[BaseException] = None
        self._pages: set = set()

    @classmethod
    def from_config(cls, cfg: dict) -> "BrowserHandle":
        try:
            from . import config
        except ImportError:
            import config

        engine = str(cfg.get("browser_engine") or "chromium")
        return cls(
            engine=engine,
            headless=bool(cfg.get("headless", True)),
            executable_path=config.resolve_browser_path(cfg) if engine == "chromium" else None,
            user_data_dir=str(cfg.get("user_data_dir") or "") or None,
            user_agent=str(cfg.get("user_agent") or constants.DEFAULT_USER_AGENT),
        )

    @property
    def started(self) -> bool:
        return self._context is not None

    @property
    def start_error(self) -> Optional[BaseException]:
        return self._start_error

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def _resolve_user_data_dir(self) -> str:
        if self.user_data_dir:
            return self.user_data_dir
        # Fresh profile per process unless the operator pins one.
        return os.path.join(tempfile.gettempdir(), f"cursor-bridge-browser-{time.time_ns()}")

    async def start(self) -> None:
        async with self._start_lock:
            if self._context is not None:
                return
            if self._start_error is not None:
                raise BrowserNotInitializedError(f"browser launch failed earlier: {self._start_error}")

            user_data_dir = self._resolve_user_data_dir()
            stack = AsyncExitStack()
            try:
                if self.engine == "camoufox":
                    debug_print("🦊 Launching Camoufox...")
                    context = await stack.enter_async_context(
                        AsyncCamoufox(
                            headless=self.headless,
                            main_world_eval=True,
                            persistent_context=True,
                            user_data_dir=user_data_dir,
                        )
                    )
                else:
                    debug_print(f"🌐 Launching Chromium (headless={self.headless})...")
                    playwright = await stack.enter_async_context(async_playwright())
                    context = await playwright.chromium.launch_persistent_context(
                        user_data_dir=user_data_dir,
                        executable_path=self.executable_path,
                        headless=self.headless,
                        user_agent=self.user_agent,
                        args=list(constants.CHROMIUM_LAUNCH_ARGS),
                    )
                    stack.push_async_callback(context.close)
            except Exception as e:
                await stack.aclose()
                self._start_error = e
                debug_print(f"❌ Browser launch failed: {e}")
                raise BrowserNotInitializedError(f"browser launch failed: {e}") from e

            self._stack = stack
            self._context = context
            debug_print(f"✅ Browser ready (profile: {user_data_dir})")

    async def close(self) -> None:
        for page in list(self._pages):
            await self.release_page(page)
        stack, self._stack = self._stack, None
        self._context = None
        if stack is not None:
            try:
                await stack.aclose()
            except Exception as e:
                debug_print(f"⚠️ Error while shutting down browser: {e}")

    def ensure_started(self) -> None:
        if self._context is None:
            if self._start_error is not None:
                raise BrowserNotInitializedError(f"browser launch failed: {self._start_error}")
            raise BrowserNotInitializedError()

    def main_world(self, script: str) -> str:
        """Camoufox evaluates in an isolated world unless the script carries its main-world prefix."""
        if self.engine == "camoufox":
            return f"mw:{script}"
        return script

    async def _apply_stealth(self, page) -> None:
        if self.engine == "chromium":
            # Per-page override so the UA holds even if the persistent profile was created with another one.
            try:
                cdp = await self._context.new_cdp_session(page)
                await cdp.send("Network.setUserAgentOverride", {"userAgent": self.user_agent})
            except Exception as e:
                debug_print(f"  ⚠️ Could not override user agent: {e}")
        await page.add_init_script(constants.WEBDRIVER_PATCH_SCRIPT)

    async def new_page(self):
        """Open a tab with the desktop UA and the webdriver patch already in place."""
        self.ensure_started()
        page = await self._context.new_page()
        self._pages.add(page)
        try:
            await self._apply_stealth(page)
        except BaseException:
            await self.release_page(page)
            raise
        return page

    async def release_page(self, page) -> None:
        if page is None:
            return
        self._pages.discard(page)
        try:
            await page.close()
        except Exception as e:
            debug_print(f"  ⚠️ Error closing page: {e}")

    @asynccontextmanager
    async def page(self):
        page = await self.new_page()
        try:
            yield page
        finally:
            await self.release_page(page)
