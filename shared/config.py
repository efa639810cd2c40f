"""
Environment-based configuration for the checkout funnel automation.

This module exposes a small, typed configuration surface shared by the CLI,
the runner and the session automaton. All values are sourced from
environment variables with sensible, non-secret defaults.

No credentials are hard-coded here; site credentials come from the site
profile file or from per-site environment variables (see
`funnel.site_profiles`). Local development can use python-dotenv.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, Optional

Environment = Literal["local", "dev", "staging", "prod"]
LogFormat = Literal["console", "json"]

# Wizard budget bounds; values outside are clamped.
MIN_CUSTOMIZATION_STEPS = 1
MAX_CUSTOMIZATION_STEPS = 20


@dataclass(frozen=True)
class AppConfig:
    """
    Top-level application configuration.

    Timing budgets that belong to the automaton rather than to a single site
    live here; per-site selector and timing data lives in the site profile.
    """

    environment: Environment
    log_level: str

    # Optional file path for logs; when set, logs are written to file
    # (and stdout if log_stdout).
    log_file: Optional[str]
    log_stdout: bool
    # console = human-readable step log, json = one JSON object per event
    log_format: LogFormat

    # Diagnostic screenshots
    artifacts_dir: str
    screenshots_enabled: bool

    # Browser launch
    headless: bool
    chrome_path: Optional[str]
    accept_language: str

    # Site profiles JSON (built-in profiles when unset)
    site_profiles_path: Optional[str]

    # Seconds the browser stays open after a successful run
    hold_open_seconds: int

    # Two-phase OTP wait budgets (ms)
    otp_appear_timeout_ms: int
    otp_resolve_timeout_ms: int

    # Bounded wait for a new browsing context after a trigger (ms)
    handoff_timeout_ms: int

    customization_max_steps: int

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Construct configuration from environment variables.

        All fields have defaults suitable for a local, headed run.
        """

        environment = os.getenv("APP_ENV", "local")

        if environment not in {"local", "dev", "staging", "prod"}:
            raise ValueError(f"Unsupported APP_ENV value: {environment!r}")

        log_format = (os.getenv("LOG_FORMAT") or "console").strip().lower()
        if log_format not in {"console", "json"}:
            raise ValueError(f"Unsupported LOG_FORMAT value: {log_format!r}")

        def _bool_env(name: str, default: bool) -> bool:
            raw = (os.getenv(name) or str(default)).strip().lower()
            return raw in ("true", "1", "yes")

        def _int_env(name: str, default: int) -> int:
            raw = (os.getenv(name) or "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                return default

        def _customization_max_steps() -> int:
            steps = _int_env("CUSTOMIZATION_MAX_STEPS", 6)
            return max(MIN_CUSTOMIZATION_STEPS, min(MAX_CUSTOMIZATION_STEPS, steps))

        return cls(
            environment=environment,  # type: ignore[arg-type]
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            log_stdout=_bool_env("LOG_STDOUT", True),
            log_format=log_format,  # type: ignore[arg-type]
            artifacts_dir=os.getenv("ARTIFACTS_DIR", "./screenshots"),
            screenshots_enabled=_bool_env("SCREENSHOTS_ENABLED", True),
            headless=_bool_env("HEADLESS", False),
            chrome_path=os.getenv("CHROME_PATH") or None,
            accept_language=os.getenv("ACCEPT_LANGUAGE", "en-IN,en;q=0.9"),
            site_profiles_path=os.getenv("SITE_PROFILES_PATH") or None,
            hold_open_seconds=max(0, _int_env("HOLD_OPEN_SECONDS", 10)),
            otp_appear_timeout_ms=_int_env("OTP_APPEAR_TIMEOUT_MS", 30_000),
            otp_resolve_timeout_ms=_int_env("OTP_RESOLVE_TIMEOUT_MS", 60_000),
            handoff_timeout_ms=_int_env("HANDOFF_TIMEOUT_MS", 15_000),
            customization_max_steps=_customization_max_steps(),
        )

