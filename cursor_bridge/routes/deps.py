from fastapi import HTTPException, Request

try:
    from ..errors import (
        BridgeError,
        BrowserNotInitializedError,
        NavigationError,
        RelayTimeoutError,
        UpstreamError,
    )
except ImportError:
    from errors import (
        BridgeError,
        BrowserNotInitializedError,
        NavigationError,
        RelayTimeoutError,
        UpstreamError,
    )


def get_service(request: Request):
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Browser service is not available.")
    return service


def http_error_for(exc: BridgeError) -> HTTPException:
    if isinstance(exc, BrowserNotInitializedError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, RelayTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, NavigationError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, UpstreamError):
        status = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
        return HTTPException(status_code=status, detail=exc.message)
    return HTTPException(status_code=502, detail=str(exc))
