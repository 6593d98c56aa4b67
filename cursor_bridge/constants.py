import os

# --- Files ---
CONFIG_FILE = os.environ.get("CURSOR_BRIDGE_CONFIG") or "config.json"

# --- Upstream ---
CURSOR_ORIGIN = "https://cursor.com"
# Public docs page: runs the same client-side verification bootstrap as the app, no sign-in required.
BOOTSTRAP_URL = f"{CURSOR_ORIGIN}/cn/docs"
CHAT_API_PATH = "/api/chat"
CHAT_API_URL = f"{CURSOR_ORIGIN}{CHAT_API_PATH}"
HUMAN_TOKEN_HEADER = "x-is-human"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
)

# Applied with add_init_script so it runs before any site script.
WEBDRIVER_PATCH_SCRIPT = "Object.defineProperty(navigator, 'webdriver', {get: () => false});"

CHROMIUM_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-proxy-server",
    "--no-first-run",
    "--no-default-browser-check",
]

# --- Deadlines (seconds) ---
TOKEN_MAX_AGE_SECONDS = 30 * 60
SETTLE_SECONDS = 5.0
CAPTURE_WINDOW_SECONDS = 8.0
RELAY_TIMEOUT_SECONDS = 90.0
NAVIGATION_TIMEOUT_SECONDS = 60.0

# --- Token elicitation ---
# Ordered by preference; the docs page labels the button in the visitor's locale.
CHAT_TRIGGER_SELECTORS = [
    'button:has-text("询问")',
    'button:has-text("Ask")',
    '[data-testid="ask-ai"]',
]
TEXT_INPUT_SELECTORS = [
    "textarea",
    'input[type="text"]',
]
CHAT_TRIGGER_TIMEOUT_SECONDS = 10.0
TEXT_INPUT_TIMEOUT_SECONDS = 5.0
PROBE_TEXT = "hi"

# --- Page -> host bridges ---
FRAGMENT_BRIDGE = "__cursorBridgeChunk"
COMPLETION_BRIDGE = "__cursorBridgeDone"
