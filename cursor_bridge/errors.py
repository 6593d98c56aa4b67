from typing import Optional


class BridgeError(Exception):
    """Base class for every failure the bridge reports to its callers."""


class BrowserNotInitializedError(BridgeError):
    """The browser process was never started or failed to launch."""

    def __init__(self, message: str = "browser is not initialized"):
        super().__init__(message)


class NavigationError(BridgeError):
    """The bootstrap page could not be loaded."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"navigation to {url} failed{detail}")


class UpstreamError(BridgeError):
    """
    Non-OK answer from the chat endpoint, or a terminal stream failure.

    `str(err)` is the upstream body / failure message verbatim so callers can relay it as-is.
    `status_code` is only known for buffered calls; the streaming completion bridge carries text alone.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = str(message or "")
        self.status_code = status_code
        super().__init__(self.message)


class RelayTimeoutError(BridgeError, TimeoutError):
    """A relay deadline elapsed before the page produced a terminal signal."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = float(timeout_seconds)
        super().__init__(f"request timed out after {self.timeout_seconds:g}s")
