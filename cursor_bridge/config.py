import json
import os
import shutil
import sys
from pathlib import Path
from typing import Optional

try:
    from . import constants
    from .utils import debug_print
except ImportError:
    import constants
    from utils import debug_print

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

def _parse_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    return default

def _apply_env_overrides(config: dict) -> None:
    port = str(os.environ.get("PORT") or "").strip()
    if port:
        try:
            config["port"] = int(port)
        except ValueError:
            debug_print(f"⚠️  Ignoring invalid PORT={port!r}")

    browser_path = str(os.environ.get("BROWSER_PATH") or "").strip()
    if browser_path:
        config["browser_path"] = browser_path

    user_data_dir = str(os.environ.get("BROWSER_USER_DATA_DIR") or "").strip()
    if user_data_dir:
        config["user_data_dir"] = user_data_dir

    if os.environ.get("BROWSER_HEADLESS") is not None:
        config["headless"] = _parse_bool(os.environ.get("BROWSER_HEADLESS"), bool(config.get("headless", True)))

    engine = str(os.environ.get("BROWSER_ENGINE") or "").strip().lower()
    if engine:
        config["browser_engine"] = engine

def get_config():
    try:
        with open(constants.CONFIG_FILE, "r") as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        debug_print(f"⚠️  Config file error: {e}, using defaults")
        config = {}
    except Exception as e:
        debug_print(f"⚠️  Unexpected error reading config: {e}, using defaults")
        config = {}

    if not isinstance(config, dict):
        debug_print("⚠️  Config file is not a JSON object, using defaults")
        config = {}

    # Ensure default keys exist
    config.setdefault("host", "0.0.0.0")
    config.setdefault("port", 3010)
    config.setdefault("headless", True)
    config.setdefault("browser_engine", "chromium")
    config.setdefault("browser_path", "")
    config.setdefault("user_data_dir", "")
    config.setdefault("user_agent", constants.DEFAULT_USER_AGENT)
    config.setdefault("api_keys", [])
    config.setdefault("attach_token_header", False)
    config.setdefault("token_max_age_seconds", constants.TOKEN_MAX_AGE_SECONDS)
    config.setdefault("settle_seconds", constants.SETTLE_SECONDS)
    config.setdefault("capture_window_seconds", constants.CAPTURE_WINDOW_SECONDS)
    config.setdefault("relay_timeout_seconds", constants.RELAY_TIMEOUT_SECONDS)
    config.setdefault("navigation_timeout_seconds", constants.NAVIGATION_TIMEOUT_SECONDS)
    config.setdefault("refresh_on_startup", True)

    _apply_env_overrides(config)

    # Normalize api_keys so auth never has to guard against malformed entries
    if isinstance(config.get("api_keys"), list):
        normalized_keys = []
        for key_entry in config["api_keys"]:
            if isinstance(key_entry, str) and key_entry.strip():
                normalized_keys.append({"name": "Unnamed Key", "key": key_entry.strip()})
            elif isinstance(key_entry, dict) and key_entry.get("key"):
                key_entry.setdefault("name", "Unnamed Key")
                normalized_keys.append(key_entry)
        config["api_keys"] = normalized_keys
    else:
        config["api_keys"] = []

    if config.get("browser_engine") not in ("chromium", "camoufox"):
        debug_print(f"⚠️  Unknown browser_engine {config.get('browser_engine')!r}, falling back to chromium")
        config["browser_engine"] = "chromium"

    return config

def find_browser_executable() -> Optional[str]:
    """Locate an installed Chromium-family browser; None lets Playwright use its bundled build."""
    configured = str(os.environ.get("CHROME_PATH") or "").strip()
    if configured and Path(configured).exists():
        return configured

    if sys.platform == "darwin":
        candidates = [
            Path("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
            Path("/Applications/Chromium.app/Contents/MacOS/Chromium"),
            Path("/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge"),
            Path("/Applications/Brave Browser.app/Contents/MacOS/Brave Browser"),
        ]
    elif os.name == "nt" or sys.platform == "win32":
        candidates = [
            Path(os.environ.get("PROGRAMFILES", r"C:\Program Files")) / "Google" / "Chrome" / "Application" / "chrome.exe",
            Path(os.environ.get("PROGRAMFILES(X86)", r"C:\Program Files (x86)")) / "Google" / "Chrome" / "Application" / "chrome.exe",
            Path(os.environ.get("LOCALAPPDATA", "")) / "Google" / "Chrome" / "Application" / "chrome.exe",
            Path(os.environ.get("PROGRAMFILES", r"C:\Program Files")) / "Microsoft" / "Edge" / "Application" / "msedge.exe",
        ]
    else:
        candidates = [
            Path("/usr/bin/chromium"),
            Path("/usr/bin/chromium-browser"),
            Path("/usr/bin/google-chrome"),
            Path("/usr/bin/google-chrome-stable"),
            Path("/snap/bin/chromium"),
        ]
    for candidate in candidates:
        if candidate.exists():
            return str(candidate)

    for name in ("google-chrome", "chrome", "chromium", "chromium-browser", "msedge"):
        resolved = shutil.which(name)
        if resolved:
            return resolved

    return None

def resolve_browser_path(config: dict) -> Optional[str]:
    """Configured path first, then auto-detection. Only meaningful for the chromium engine."""
    configured = str(config.get("browser_path") or "").strip()
    if configured:
        return configured
    detected = find_browser_executable()
    if detected:
        debug_print(f"🔎 Auto-detected browser: {detected}")
    else:
        debug_print("🔎 No system browser found, using Playwright's bundled Chromium")
    return detected
