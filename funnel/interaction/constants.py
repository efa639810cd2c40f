"""
Interaction constants: viewport, timeouts, settle delays, shared selectors.

Millisecond values unless the name says otherwise.
"""

from __future__ import annotations

# Browser viewport for the headed session
VIEWPORT = {"width": 1920, "height": 1080}

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

LAUNCH_ARGS = (
    "--start-maximized",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
)

# Resilient actions
DEFAULT_ACTION_TIMEOUT_MS = 10_000
DEFAULT_CLICK_RETRIES = 3
CLICK_SETTLE_MS = 500  # after every successful click; the UI re-renders asynchronously
RETRY_PAUSE_MS = 1_000  # between full passes of click_with_retry
TYPE_SETTLE_MS = 500
KEY_DELAY_MS = 50  # inter-keystroke delay for key-event driven validators
CLEAR_SETTLE_MS = 100
MIN_SELECTOR_SLICE_MS = 250
ELEMENT_EXISTS_TIMEOUT_MS = 3_000
CLICK_TIMEOUT_MS = 5_000

# Modal dismissal
MODAL_PROBE_TIMEOUT_MS = 2_000
MODAL_SETTLE_MS = 1_000
ESCAPE_SETTLE_MS = 500

# Condition waiter
POLL_INTERVAL_MS = 250

# Listing scan for add controls
ADD_SCAN_CHUNKS = 4
ADD_SCAN_SCROLL_PX = 600
ADD_SCAN_PAUSE_MS = 400

# Diagnostics
CAPTURE_TIMEOUT_MS = 10_000

# Event kind for new browsing contexts (Playwright BrowserContext "page" event)
NEW_CONTEXT_EVENT = "page"

# Containers that host auth dialogs and customization wizards
DIALOG_CONTAINER = '[role="dialog"], .modal, [class*="Modal"]'
