"""
Best-effort UI automation used to make the docs page issue a real /api/chat call.

Nothing here raises for a missing or unresponsive element: every helper reports found/not-found or
succeeded/failed and the caller decides what to tolerate.
"""

import asyncio
from typing import Iterable, Optional

try:
    from . import constants
    from .utils import debug_print
except ImportError:
    import constants
    from utils import debug_print


async def locate_first(page, selectors: Iterable[str], timeout_seconds: float):
    """Return the first element matching `selectors` in priority order, or None."""
    selectors = [s for s in selectors if s]
    if not selectors:
        return None
    # Share the discovery budget across candidates so a group never exceeds its timeout.
    per_selector_ms = max(250, int(float(timeout_seconds) * 1000 / len(selectors)))
    for selector in selectors:
        try:
            element = await page.wait_for_selector(selector, timeout=per_selector_ms, state="visible")
        except Exception:
            continue
        if element is not None:
            debug_print(f"  🎯 Found element: {selector}")
            return element
    return None


async def find_chat_trigger(page):
    """Ask-AI button first; any text input as a fallback."""
    element = await locate_first(page, constants.CHAT_TRIGGER_SELECTORS, constants.CHAT_TRIGGER_TIMEOUT_SECONDS)
    if element is not None:
        return element
    debug_print("  ⚠️ No chat trigger found, trying a generic text input...")
    return await locate_first(page, constants.TEXT_INPUT_SELECTORS, constants.TEXT_INPUT_TIMEOUT_SECONDS)


async def _attempt(label: str, action) -> bool:
    try:
        await action
        return True
    except Exception as e:
        debug_print(f"  ⚠️ {label} failed (ignored): {e}")
        return False


async def elicit_chat_request(
    page,
    element,
    probe_text: str = constants.PROBE_TEXT,
    click_pause_seconds: float = 1.0,
    type_pause_seconds: float = 0.5,
) -> dict:
    """
    Click, type a short probe and press Enter so the site's own script sends a chat request.

    Returns a per-step report, e.g. {"click": True, "type": False, "submit": True}.
    """
    report = {"click": False, "type": False, "submit": False}
    if element is None:
        return report

    report["click"] = await _attempt("click", element.click())
    await asyncio.sleep(click_pause_seconds)
    report["type"] = await _attempt("type", element.type(probe_text))
    await asyncio.sleep(type_pause_seconds)
    report["submit"] = await _attempt("submit", page.keyboard.press("Enter"))
    return report
