import asyncio
import inspect
from typing import Awaitable, Callable, Optional, Union

try:
    from . import constants
    from .errors import BridgeError, NavigationError, RelayTimeoutError, UpstreamError
    from .models import ChatRequest
    from .utils import debug_print, log_http_status
except ImportError:
    import constants
    from errors import BridgeError, NavigationError, RelayTimeoutError, UpstreamError
    from models import ChatRequest
    from utils import debug_print, log_http_status

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]

# Runs in the page so cookies, headers and TLS fingerprint are the browser's own.
BUFFERED_FETCH_SCRIPT = """async ({url, body, headers}) => {
  try {
    const res = await fetch(url, {
      method: 'POST',
      headers: { 'Content-Type': 'application/json', ...headers },
      body: JSON.stringify(body),
      credentials: 'include',
    });
    const text = await res.text();
    return { ok: res.ok, status: res.status, text };
  } catch (e) {
    return { ok: false, status: 502, text: 'FETCH_ERROR: ' + String((e && e.message) || e) };
  }
}"""

# Fire-and-forget: returns immediately, progress arrives through the two bridges.
# Every bridge call is awaited so fragments reach the host in read order and completion comes last.
STREAMING_FETCH_SCRIPT = """({url, body, headers, chunkBridge, doneBridge}) => {
  const sendChunk = (text) => window[chunkBridge](text);
  const finish = (message) => window[doneBridge](message);
  (async () => {
    let res;
    try {
      res = await fetch(url, {
        method: 'POST',
        headers: { 'Content-Type': 'application/json', ...headers },
        body: JSON.stringify(body),
        credentials: 'include',
      });
    } catch (e) {
      await finish(String((e && e.message) || e || 'fetch failed'));
      return;
    }
    if (!res.ok) {
      let text = '';
      try { text = await res.text(); } catch (e) {}
      await finish(text || ('HTTP ' + res.status));
      return;
    }
    try {
      if (!res.body) {
        const text = await res.text();
        if (text) await sendChunk(text);
        await finish('');
        return;
      }
      const reader = res.body.getReader();
      const decoder = new TextDecoder();
      while (true) {
        const { done, value } = await reader.read();
        if (done) {
          const tail = decoder.decode();
          if (tail) await sendChunk(tail);
          break;
        }
        const chunk = decoder.decode(value, { stream: true });
        if (chunk) await sendChunk(chunk);
      }
      await finish('');
    } catch (e) {
      await finish(String((e && e.message) || e || 'stream read failed'));
    }
  })();
}"""


class _PageRelay:
    def __init__(
        self,
        handle,
        *,
        endpoint_url: str = constants.CHAT_API_URL,
        bootstrap_url: str = constants.BOOTSTRAP_URL,
        timeout_seconds: float = constants.RELAY_TIMEOUT_SECONDS,
        navigation_timeout_seconds: float = constants.NAVIGATION_TIMEOUT_SECONDS,
    ):
        self._handle = handle
        self.endpoint_url = endpoint_url
        self.bootstrap_url = bootstrap_url
        self.timeout_seconds = float(timeout_seconds)
        self.navigation_timeout_seconds = float(navigation_timeout_seconds)

    async def _bootstrap(self, page) -> None:
        """Load the docs page so the fetch inherits the site's session, cookies and scripts."""
        try:
            await page.goto(
                self.bootstrap_url,
                wait_until="domcontentloaded",
                timeout=self.navigation_timeout_seconds * 1000,
            )
            await page.wait_for_load_state("load")
        except Exception as e:
            raise NavigationError(self.bootstrap_url, e) from e


class BufferedRelay(_PageRelay):
    async def send_request(self, req: ChatRequest, extra_headers: Optional[dict] = None) -> str:
        self._handle.ensure_started()
        async with self._handle.page() as page:
            await self._bootstrap(page)

            args = {"url": self.endpoint_url, "body": req.to_dict(), "headers": dict(extra_headers or {})}
            try:
                result = await asyncio.wait_for(
                    page.evaluate(self._handle.main_world(BUFFERED_FETCH_SCRIPT), args),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                debug_print(f"⏱️ Buffered request {req.id} timed out after {self.timeout_seconds:g}s")
                raise RelayTimeoutError(self.timeout_seconds) from e
            except Exception as e:
                raise BridgeError(f"script evaluation failed: {e}") from e

        result = result if isinstance(result, dict) else {}
        status = int(result.get("status") or 0)
        text = str(result.get("text") or "")
        if not result.get("ok"):
            log_http_status(status or 502, f"buffered request {req.id}")
            raise UpstreamError(text or f"HTTP {status}", status_code=status or None)
        return text


class StreamingRelay(_PageRelay):
    async def send_stream_request(
        self,
        req: ChatRequest,
        on_chunk: ChunkCallback,
        extra_headers: Optional[dict] = None,
    ) -> None:
        self._handle.ensure_started()
        loop = asyncio.get_running_loop()
        completion: asyncio.Future = loop.create_future()

        async def _on_fragment(chunk) -> str:
            result = on_chunk(str(chunk if chunk is not None else ""))
            if inspect.isawaitable(result):
                await result
            return "ok"

        def _on_done(message) -> str:
            # Single-slot: the first terminal signal wins, anything after it is ignored.
            if not completion.done():
                completion.set_result(str(message or ""))
            return "ok"

        async with self._handle.page() as page:
            await page.expose_function(constants.FRAGMENT_BRIDGE, _on_fragment)
            await page.expose_function(constants.COMPLETION_BRIDGE, _on_done)
            await self._bootstrap(page)

            args = {
                "url": self.endpoint_url,
                "body": req.to_dict(),
                "headers": dict(extra_headers or {}),
                "chunkBridge": constants.FRAGMENT_BRIDGE,
                "doneBridge": constants.COMPLETION_BRIDGE,
            }
            try:
                await page.evaluate(self._handle.main_world(STREAMING_FETCH_SCRIPT), args)
            except Exception as e:
                raise BridgeError(f"script evaluation failed: {e}") from e

            try:
                message = await asyncio.wait_for(completion, timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                debug_print(f"⏱️ Stream {req.id} timed out after {self.timeout_seconds:g}s")
                raise RelayTimeoutError(self.timeout_seconds) from e

        if message:
            debug_print(f"❌ Stream {req.id} failed: {message[:200]}")
            raise UpstreamError(message)
