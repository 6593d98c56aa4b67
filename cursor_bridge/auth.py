from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader

try:
    from . import config
except ImportError:
    import config

API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def _extract_bearer(value: Optional[str]) -> str:
    value = str(value or "").strip()
    if value.lower().startswith("bearer "):
        return value[7:].strip()
    return value


async def require_api_key(key: Optional[str] = Depends(API_KEY_HEADER)) -> Optional[dict]:
    """
    Enforce `Authorization: Bearer <key>` when api_keys are configured.
    With no keys configured the bridge is open (local use), and this returns None.
    """
    cfg = config.get_config()
    api_keys = cfg.get("api_keys", [])
    if not api_keys:
        return None

    api_key_str = _extract_bearer(key)
    if not api_key_str:
        raise HTTPException(status_code=401, detail="Authentication required. Provide 'Authorization: Bearer <key>'.")

    key_data = next((k for k in api_keys if k.get("key") == api_key_str), None)
    if not key_data:
        raise HTTPException(status_code=401, detail="Invalid API Key.")
    return key_data
