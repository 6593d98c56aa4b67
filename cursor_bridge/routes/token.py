from fastapi import APIRouter, HTTPException, Depends

try:
    from .. import auth
    from ..errors import BridgeError
    from ..utils import debug_print
    from .deps import get_service, http_error_for
except ImportError:
    import auth
    from errors import BridgeError
    from utils import debug_print
    from routes.deps import get_service, http_error_for

router = APIRouter()


@router.get("/api/token")
async def token_status(service=Depends(get_service), api_key=Depends(auth.require_api_key)):
    # Goes through get_token() so a stale read schedules the same background refresh as any other reader.
    token = service.get_token()
    record = service.tokens.record
    has_token = bool(token)
    return {
        "has_token": has_token,
        "token": token,
        "captured_at": record.captured_at if has_token else None,
        "age_seconds": round(record.age(service.tokens.now()), 1) if has_token else None,
        "stale": service.tokens.is_stale(record),
        "refreshing": service.tokens.refreshing,
    }


@router.post("/api/token/refresh")
async def refresh_token(service=Depends(get_service), api_key=Depends(auth.require_api_key)):
    try:
        captured = await service.refresh_token()
    except BridgeError as e:
        debug_print(f"❌ Manual token refresh failed: {e}")
        raise http_error_for(e)
    return {"captured": captured}


@router.get("/health")
async def health(service=Depends(get_service)):
    if not service.started:
        raise HTTPException(status_code=503, detail="Browser is not running.")
    return {"status": "ok", "browser": True}
