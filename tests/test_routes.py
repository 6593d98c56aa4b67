import asyncio
import json
import os
import tempfile
import unittest
from unittest.mock import patch

import httpx

from cursor_bridge import constants
from cursor_bridge.errors import BrowserNotInitializedError, RelayTimeoutError, UpstreamError
from cursor_bridge.human_token import TokenCache, TokenRecord
from cursor_bridge.main import app


class _NoopRefresher:
    def __init__(self, token: str = ""):
        self.token = token

    async def capture(self) -> str:
        return self.token

    async def release(self) -> None:
        return None


class FakeService:
    def __init__(self, *, body: str = "", chunks=(), error=None, started: bool = True, token: str = "", time_fn=None):
        self.body = body
        self.chunks = list(chunks)
        self.error = error
        self.started = started
        self.tokens = TokenCache(_NoopRefresher(token), time_fn=time_fn)
        self.requests = []

    def get_token(self) -> str:
        return self.tokens.get_token()

    async def refresh_token(self) -> bool:
        return await self.tokens.refresh_token()

    async def send_request(self, req) -> str:
        self.requests.append(req)
        if self.error is not None:
            raise self.error
        return self.body

    async def send_stream_request(self, req, on_chunk) -> None:
        self.requests.append(req)
        for chunk in self.chunks:
            await on_chunk(chunk)
        if self.error is not None:
            raise self.error


CHAT_BODY = {
    "model": "claude-sonnet-4",
    "messages": [{"role": "user", "parts": [{"type": "text", "text": "hello"}]}],
}


class RouteTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self._tmp.name, "config.json")
        self._config_patch = patch.object(constants, "CONFIG_FILE", self.config_path)
        self._config_patch.start()

    def tearDown(self) -> None:
        self._config_patch.stop()
        self._tmp.cleanup()
        if hasattr(app.state, "service"):
            del app.state.service

    def use_service(self, service) -> None:
        app.state.service = service

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://bridge.test")


class TestChatRoute(RouteTestCase):
    async def test_buffered_returns_raw_body(self) -> None:
        service = FakeService(body='data: {"type":"text-delta"}')
        self.use_service(service)

        async with self.client() as client:
            resp = await client.post("/api/chat", json=CHAT_BODY)

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.text, 'data: {"type":"text-delta"}')
        self.assertEqual(service.requests[0].model, "claude-sonnet-4")

    async def test_streaming_relays_chunks_in_order(self) -> None:
        self.use_service(FakeService(chunks=["a", "b", "c"]))

        async with self.client() as client:
            resp = await client.post("/api/chat", json={**CHAT_BODY, "stream": True})

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(resp.text, "abc")

    async def test_streaming_failure_after_first_chunk_ends_with_error_event(self) -> None:
        self.use_service(FakeService(chunks=["a", "b"], error=UpstreamError("connection reset")))

        async with self.client() as client:
            resp = await client.post("/api/chat", json={**CHAT_BODY, "stream": True})

        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.text.startswith("ab"))
        frame = resp.text[2:]
        self.assertTrue(frame.startswith("data: ") and frame.endswith("\n\n"))
        self.assertEqual(json.loads(frame[len("data: "):]), {"type": "error", "errorText": "connection reset"})

    async def test_streaming_rejection_becomes_http_error(self) -> None:
        self.use_service(FakeService(error=UpstreamError("nope")))

        async with self.client() as client:
            resp = await client.post("/api/chat", json={**CHAT_BODY, "stream": True})

        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["detail"], "nope")

    async def test_error_mapping(self) -> None:
        cases = [
            (UpstreamError("forbidden", status_code=403), 403),
            (RelayTimeoutError(90), 504),
            (BrowserNotInitializedError(), 503),
        ]
        for error, expected in cases:
            with self.subTest(error=type(error).__name__):
                self.use_service(FakeService(error=error))
                async with self.client() as client:
                    resp = await client.post("/api/chat", json=CHAT_BODY)
                self.assertEqual(resp.status_code, expected)

    async def test_invalid_body(self) -> None:
        self.use_service(FakeService())

        async with self.client() as client:
            missing_model = await client.post("/api/chat", json={"messages": CHAT_BODY["messages"]})
            bad_json = await client.post(
                "/api/chat", content=b"{not json", headers={"content-type": "application/json"}
            )

        self.assertEqual(missing_model.status_code, 400)
        self.assertEqual(bad_json.status_code, 400)

    async def test_api_key_enforced_when_configured(self) -> None:
        with open(self.config_path, "w") as f:
            json.dump({"api_keys": [{"name": "ci", "key": "sk-test"}]}, f)
        self.use_service(FakeService(body="ok"))

        async with self.client() as client:
            anonymous = await client.post("/api/chat", json=CHAT_BODY)
            wrong = await client.post("/api/chat", json=CHAT_BODY, headers={"Authorization": "Bearer nope"})
            right = await client.post("/api/chat", json=CHAT_BODY, headers={"Authorization": "Bearer sk-test"})

        self.assertEqual(anonymous.status_code, 401)
        self.assertEqual(wrong.status_code, 401)
        self.assertEqual(right.status_code, 200)


class TestTokenRoutes(RouteTestCase):
    async def test_status_without_token(self) -> None:
        self.use_service(FakeService())

        async with self.client() as client:
            resp = await client.get("/api/token")

        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["has_token"])
        self.assertIsNone(body["captured_at"])
        self.assertFalse(body["stale"])

    async def test_manual_refresh_then_status(self) -> None:
        self.use_service(FakeService(token="tok-xyz"))

        async with self.client() as client:
            refreshed = await client.post("/api/token/refresh")
            status = await client.get("/api/token")

        self.assertEqual(refreshed.json(), {"captured": True})
        self.assertEqual(status.json()["token"], "tok-xyz")
        self.assertTrue(status.json()["has_token"])

    async def test_stale_token_reported(self) -> None:
        service = FakeService()
        service.tokens._record = TokenRecord(value="tok-old", captured_at=0.0)
        self.use_service(service)

        async with self.client() as client:
            resp = await client.get("/api/token")

        self.assertTrue(resp.json()["stale"])
        self.assertEqual(resp.json()["token"], "tok-old")
        await service.tokens.close()

    async def test_age_follows_cache_clock(self) -> None:
        now = {"t": 2000.0}
        service = FakeService(time_fn=lambda: now["t"])
        service.tokens._record = TokenRecord(value="tok", captured_at=1900.0)
        self.use_service(service)

        async with self.client() as client:
            fresh = (await client.get("/api/token")).json()
            now["t"] = 5000.0
            stale = (await client.get("/api/token")).json()

        self.assertEqual((fresh["age_seconds"], fresh["stale"]), (100.0, False))
        self.assertEqual((stale["age_seconds"], stale["stale"]), (3100.0, True))
        await service.tokens.close()

    async def test_health_reflects_browser_state(self) -> None:
        self.use_service(FakeService(started=False))
        async with self.client() as client:
            down = await client.get("/health")
        self.use_service(FakeService(started=True))
        async with self.client() as client:
            up = await client.get("/health")

        self.assertEqual(down.status_code, 503)
        self.assertEqual(up.json(), {"status": "ok", "browser": True})

    async def test_missing_service_is_unavailable(self) -> None:
        async with self.client() as client:
            resp = await client.get("/api/token")
        self.assertEqual(resp.status_code, 503)


class _BrokenRefreshService:
    def __init__(self, error: BaseException):
        self.error = error
        self.calls = 0

    async def refresh_token(self) -> bool:
        self.calls += 1
        raise self.error


class TestStartupRefresh(unittest.IsolatedAsyncioTestCase):
    async def test_browser_errors_are_logged_not_raised(self) -> None:
        from playwright.async_api import Error as PlaywrightError

        from cursor_bridge import main

        for error in (PlaywrightError("Target page, context or browser has been closed"), RuntimeError("boom")):
            with self.subTest(error=type(error).__name__):
                service = _BrokenRefreshService(error)
                task = asyncio.create_task(main._startup_refresh(service))
                await task

                self.assertEqual(service.calls, 1)
                self.assertIsNone(task.exception())


if __name__ == "__main__":
    unittest.main()
