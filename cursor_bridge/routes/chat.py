import asyncio
import json
from fastapi import APIRouter, Request, HTTPException, Depends
from starlette.responses import PlainTextResponse, StreamingResponse

try:
    from .. import auth
    from ..errors import BridgeError
    from ..models import ChatRequest
    from ..stream_response import QueueChunkSink
    from ..utils import debug_print
    from .deps import get_service, http_error_for
except ImportError:
    import auth
    from errors import BridgeError
    from models import ChatRequest
    from stream_response import QueueChunkSink
    from utils import debug_print
    from routes.deps import get_service, http_error_for

router = APIRouter()


def _error_event(exc: BaseException) -> str:
    payload = {"type": "error", "errorText": str(exc) or type(exc).__name__}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def _parse_chat_request(request: Request) -> tuple[ChatRequest, bool]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        debug_print(f"❌ Invalid JSON in request body: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid JSON in request body: {str(e)}")
    except Exception as e:
        debug_print(f"❌ Failed to read request body: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to read request body: {str(e)}")

    try:
        chat_request = ChatRequest.from_dict(body)
    except ValueError as e:
        debug_print(f"❌ {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return chat_request, bool(body.get("stream", False))


@router.post("/api/chat")
async def relay_chat(request: Request, service=Depends(get_service), api_key=Depends(auth.require_api_key)):
    chat_request, stream = await _parse_chat_request(request)

    debug_print("\n" + "=" * 60)
    debug_print(f"🔵 Chat request {chat_request.id}")
    debug_print(f"🤖 Model: {chat_request.model} | 💬 Messages: {len(chat_request.messages)} | 🌊 Stream: {stream}")
    debug_print("=" * 60)

    if not stream:
        try:
            body = await service.send_request(chat_request)
        except BridgeError as e:
            debug_print(f"❌ Buffered relay failed: {e}")
            raise http_error_for(e)
        return PlainTextResponse(body)

    sink = QueueChunkSink()
    relay_task = sink.attach(asyncio.create_task(service.send_stream_request(chat_request, sink)))

    # Hold the response until the stream proves itself: a rejection arrives before any fragment
    # and should surface as an HTTP error, not as an empty 200.
    first = await sink.first()
    if first is None:
        try:
            relay_task.result()
        except BridgeError as e:
            debug_print(f"❌ Stream relay failed: {e}")
            raise http_error_for(e)
        return StreamingResponse(iter(()), media_type="text/event-stream")

    async def generate_stream():
        try:
            yield first
            async for chunk in sink.remaining():
                yield chunk
            if relay_task.done() and not relay_task.cancelled() and relay_task.exception() is not None:
                error = relay_task.exception()
                debug_print(f"❌ Stream {chat_request.id} ended with error: {error}")
                # The 200 is already committed; a terminal error frame marks the reply as cut short.
                yield _error_event(error)
            else:
                debug_print(f"✅ Stream {chat_request.id} complete")
        finally:
            if not relay_task.done():
                debug_print(f"⚠️ Client went away, cancelling stream {chat_request.id}")
                relay_task.cancel()

    return StreamingResponse(generate_stream(), media_type="text/event-stream")
