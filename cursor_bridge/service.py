from typing import Optional

try:
    from . import constants
    from .browser import BrowserHandle
    from .human_token import TokenCache, TokenRefresher
    from .models import ChatRequest
    from .relay import BufferedRelay, ChunkCallback, StreamingRelay
    from .utils import debug_print
except ImportError:
    import constants
    from browser import BrowserHandle
    from human_token import TokenCache, TokenRefresher
    from models import ChatRequest
    from relay import BufferedRelay, ChunkCallback, StreamingRelay
    from utils import debug_print


class BrowserService:
    """
    One per process: built at startup and handed to every consumer by reference.

    Relays never touch token state unless `attach_token_header` is on, in which case the cached
    x-is-human value rides along on the in-page fetch.
    """

    def __init__(
        self,
        handle: BrowserHandle,
        *,
        attach_token_header: bool = False,
        token_max_age_seconds: float = constants.TOKEN_MAX_AGE_SECONDS,
        settle_seconds: float = constants.SETTLE_SECONDS,
        capture_window_seconds: float = constants.CAPTURE_WINDOW_SECONDS,
        relay_timeout_seconds: float = constants.RELAY_TIMEOUT_SECONDS,
        navigation_timeout_seconds: float = constants.NAVIGATION_TIMEOUT_SECONDS,
        time_fn=None,
    ):
        self.handle = handle
        self.attach_token_header = bool(attach_token_header)
        self.tokens = TokenCache(
            TokenRefresher(
                handle,
                settle_seconds=settle_seconds,
                capture_window_seconds=capture_window_seconds,
                navigation_timeout_seconds=navigation_timeout_seconds,
            ),
            max_age_seconds=token_max_age_seconds,
            time_fn=time_fn,
        )
        self.buffered = BufferedRelay(
            handle,
            timeout_seconds=relay_timeout_seconds,
            navigation_timeout_seconds=navigation_timeout_seconds,
        )
        self.streaming = StreamingRelay(
            handle,
            timeout_seconds=relay_timeout_seconds,
            navigation_timeout_seconds=navigation_timeout_seconds,
        )

    @classmethod
    def from_config(cls, cfg: dict) -> "BrowserService":
        return cls(
            BrowserHandle.from_config(cfg),
            attach_token_header=bool(cfg.get("attach_token_header", False)),
            token_max_age_seconds=float(cfg.get("token_max_age_seconds", constants.TOKEN_MAX_AGE_SECONDS)),
            settle_seconds=float(cfg.get("settle_seconds", constants.SETTLE_SECONDS)),
            capture_window_seconds=float(cfg.get("capture_window_seconds", constants.CAPTURE_WINDOW_SECONDS)),
            relay_timeout_seconds=float(cfg.get("relay_timeout_seconds", constants.RELAY_TIMEOUT_SECONDS)),
            navigation_timeout_seconds=float(
                cfg.get("navigation_timeout_seconds", constants.NAVIGATION_TIMEOUT_SECONDS)
            ),
        )

    @property
    def started(self) -> bool:
        return self.handle.started

    async def start(self) -> None:
        await self.handle.start()

    async def close(self) -> None:
        await self.tokens.close()
        await self.handle.close()
        debug_print("👋 Browser service closed")

    def get_token(self) -> str:
        return self.tokens.get_token()

    async def refresh_token(self) -> bool:
        return await self.tokens.refresh_token()

    def _token_headers(self) -> Optional[dict]:
        if not self.attach_token_header:
            return None
        token = self.tokens.get_token()
        if not token:
            return None
        return {constants.HUMAN_TOKEN_HEADER: token}

    async def send_request(self, req: ChatRequest) -> str:
        return await self.buffered.send_request(req, extra_headers=self._token_headers())

    async def send_stream_request(self, req: ChatRequest, on_chunk: ChunkCallback) -> None:
        await self.streaming.send_stream_request(req, on_chunk, extra_headers=self._token_headers())
