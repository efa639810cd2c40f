"""
Diagnostic screenshots at named checkpoints.

Convention: {artifacts_dir}/{site}__{session_id}/{label}_{timestamp_ms}.png

Capture is fire-and-forget from the automaton's point of view: it is
bounded by a timeout and every failure is logged and swallowed, so a
broken sink never changes control flow.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from funnel.interaction.constants import CAPTURE_TIMEOUT_MS
from shared.config import AppConfig
from shared.logging import get_logger

if TYPE_CHECKING:
    from funnel.interaction.driver import InteractionDriver

logger = get_logger(__name__)


def _normalize_label(label: str) -> str:
    value = "".join(c if c.isalnum() or c in "-_" else "_" for c in (label or "").strip())
    return value or "capture"


def build_capture_path(artifacts_dir: str, site_id: str, session_id: str, label: str, timestamp_ms: int) -> Path:
    """Build the screenshot path for one capture (does not create anything)."""
    root_name = f"{(site_id or 'unknown-site').strip().lower()}__{session_id}"
    return Path(artifacts_dir) / root_name / f"{_normalize_label(label)}_{timestamp_ms}.png"


def write_screenshot(path: Path, image_bytes: bytes) -> int:
    """Write screenshot bytes, creating the session directory. May raise OSError."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(image_bytes)
    return len(image_bytes)


class DiagnosticsSink:
    """Per-run screenshot sink keyed by human-readable checkpoint labels."""

    def __init__(
        self,
        config: AppConfig,
        site_id: str,
        session_id: str,
        *,
        timeout_ms: int = CAPTURE_TIMEOUT_MS,
        now_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self.enabled = config.screenshots_enabled
        self.artifacts_dir = config.artifacts_dir
        self.site_id = site_id
        self.session_id = session_id
        self.timeout_ms = timeout_ms
        self._now_ms = now_ms
        self.captured: list[str] = []

    async def capture(self, driver: "InteractionDriver", label: str) -> Optional[Path]:
        """Screenshot the given context under label. Returns the written path or None."""
        if not self.enabled:
            return None
        path = build_capture_path(self.artifacts_dir, self.site_id, self.session_id, label, self._now_ms())
        try:
            image = await asyncio.wait_for(driver.screenshot(full_page=True), timeout=self.timeout_ms / 1000)
            size = write_screenshot(path, image)
        except asyncio.TimeoutError:
            logger.warning("diagnostics.capture_timeout", label=label, timeout_ms=self.timeout_ms)
            return None
        except Exception as e:
            logger.warning(
                "diagnostics.capture_failed",
                label=label,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        self.captured.append(label)
        logger.info("diagnostics.captured", label=label, path=str(path), size_bytes=size)
        return path
