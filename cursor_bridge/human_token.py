import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

try:
    from . import constants
    from . import browser_automation
    from .errors import NavigationError
    from .utils import debug_print, preview
except ImportError:
    import constants
    import browser_automation
    from errors import NavigationError
    from utils import debug_print, preview


def is_chat_api_url(url: str) -> bool:
    return constants.CHAT_API_PATH in str(url or "")


def find_human_token(headers: Optional[dict]) -> str:
    """Header lookup is case-insensitive; returns "" when the header is absent or blank."""
    for name, value in (headers or {}).items():
        if str(name).lower() == constants.HUMAN_TOKEN_HEADER:
            return str(value or "").strip()
    return ""


@dataclass(frozen=True)
class TokenRecord:
    value: str = ""
    captured_at: float = 0.0

    def age(self, now: float) -> float:
        return max(0.0, float(now) - float(self.captured_at))


class TokenRefresher:
    """
    Drives one dedicated page through the docs site until its own script sends /api/chat, and reads
    the x-is-human header off that request. Interception only observes: every request continues unmodified.
    """

    def __init__(
        self,
        handle,
        *,
        bootstrap_url: str = constants.BOOTSTRAP_URL,
        settle_seconds: float = constants.SETTLE_SECONDS,
        capture_window_seconds: float = constants.CAPTURE_WINDOW_SECONDS,
        navigation_timeout_seconds: float = constants.NAVIGATION_TIMEOUT_SECONDS,
    ):
        self._handle = handle
        self.bootstrap_url = bootstrap_url
        self.settle_seconds = float(settle_seconds)
        self.capture_window_seconds = float(capture_window_seconds)
        self.navigation_timeout_seconds = float(navigation_timeout_seconds)
        self._page = None

    async def release(self) -> None:
        page, self._page = self._page, None
        if page is not None:
            await self._handle.release_page(page)

    async def capture(self) -> str:
        """Run one capture cycle. Returns the token seen during the window, or "" if none was."""
        await self.release()
        self._page = page = await self._handle.new_page()

        captured: list[str] = []

        async def _observe(route):
            try:
                headers = await route.request.all_headers()
            except Exception:
                headers = getattr(route.request, "headers", None) or {}
            token = find_human_token(headers)
            if token:
                captured.append(token)
                debug_print(f"  🔑 Observed {constants.HUMAN_TOKEN_HEADER}: {preview(token)}")
            await route.continue_()

        await page.route(is_chat_api_url, _observe)
        try:
            debug_print(f"  🌐 Navigating to {self.bootstrap_url}...")
            try:
                await page.goto(
                    self.bootstrap_url,
                    wait_until="domcontentloaded",
                    timeout=self.navigation_timeout_seconds * 1000,
                )
            except Exception as e:
                raise NavigationError(self.bootstrap_url, e) from e

            try:
                await page.wait_for_load_state("load")
            except Exception as e:
                debug_print(f"  ⚠️ Load state wait failed (continuing): {e}")
            await asyncio.sleep(self.settle_seconds)

            element = await browser_automation.find_chat_trigger(page)
            if element is not None:
                await browser_automation.elicit_chat_request(page, element)
            else:
                debug_print("  ⚠️ No chat element found; waiting for background traffic only")

            await asyncio.sleep(self.capture_window_seconds)
        finally:
            try:
                await page.unroute(is_chat_api_url, _observe)
            except Exception as e:
                debug_print(f"  ⚠️ Could not remove route: {e}")
            await self.release()

        return captured[-1] if captured else ""


class TokenCache:
    """
    Holds the last captured token.

    Readers never wait: the record is a frozen value swapped by a single assignment, so a read sees either
    the old or the new record. Writers go through `refresh_token()`, which serializes on `_refresh_lock`;
    that lock is also what keeps background refreshes single-flight.
    """

    def __init__(
        self,
        refresher: TokenRefresher,
        *,
        max_age_seconds: float = constants.TOKEN_MAX_AGE_SECONDS,
        time_fn: Optional[Callable[[], float]] = None,
    ):
        self._refresher = refresher
        self.max_age_seconds = float(max_age_seconds)
        self._time = time_fn or time.time
        self._record = TokenRecord()
        self._refresh_lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

    @property
    def record(self) -> TokenRecord:
        return self._record

    @property
    def refreshing(self) -> bool:
        return self._refresh_lock.locked()

    def is_stale(self, record: Optional[TokenRecord] = None) -> bool:
        record = record or self._record
        return bool(record.value) and record.age(self._time()) > self.max_age_seconds

    def get_token(self) -> str:
        record = self._record
        if self.is_stale(record):
            self.schedule_refresh()
        return record.value

    def now(self) -> float:
        return self._time()

    def schedule_refresh(self) -> Optional[asyncio.Task]:
        # One refresh serves every stale reader that arrives while it is queued or running.
        if self.refreshing or any(not task.done() for task in self._background):
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            debug_print("⚠️ Token is stale but no event loop is running; skipping background refresh")
            return None
        task = loop.create_task(self._refresh_in_background())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _refresh_in_background(self) -> None:
        try:
            captured = await self.refresh_token(only_if_stale=True)
            if not captured:
                debug_print("⚠️ Background refresh captured no token; keeping the previous one")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            debug_print(f"❌ Background token refresh failed: {e}")

    async def refresh_token(self, only_if_stale: bool = False) -> bool:
        async with self._refresh_lock:
            if only_if_stale and self._record.value and not self.is_stale():
                return True
            debug_print("🔄 Refreshing x-is-human token...")
            token = await self._refresher.capture()
            if not token:
                debug_print("⚠️ No token captured during the window; previous token kept")
                return False
            self._record = TokenRecord(value=token, captured_at=self._time())
            debug_print(f"✅ Token refreshed: {preview(token)}")
            return True

    async def close(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._refresher.release()
