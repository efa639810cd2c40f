"""
Command-line surface.

    funnel-run <site> <search term...>
    funnel-run <site> <signin|signup> <search term...>

The auth-mode token is only recognised for sites whose strategy supports
account creation; for other sites it is part of the search term. Exit code
0 on success, 1 on failure or usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from dotenv import load_dotenv

from funnel.errors import UnknownSiteError
from funnel.runner import run_session
from funnel.session import AuthMode
from funnel.site_profiles import available_sites, load_site_profile
from funnel.strategies import STRATEGIES
from shared.config import AppConfig
from shared.logging import configure_logging, get_logger

logger = get_logger(__name__)

AUTH_MODE_TOKENS = {"signin": AuthMode.SIGNIN, "signup": AuthMode.SIGNUP}

EXAMPLES = """\
examples:
  funnel-run swiggy pizza
  funnel-run swiggy ice cream
  funnel-run lenskart signin sunglasses
  funnel-run lenskart signup prescription glasses
"""


class UsageError(ValueError):
    """Bad command-line invocation."""


@dataclass(frozen=True)
class Invocation:
    site: str
    auth_mode: AuthMode
    search_term: str


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="funnel-run",
        description="Drive a storefront from sign-in to cart/checkout.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("site", help="Site id (see available sites)")
    parser.add_argument("words", nargs="*", help="[signin|signup] search term words")
    parser.add_argument("--headless", action="store_true", help="Run without a browser window")
    parser.add_argument("--profiles", default=None, help="Site profiles JSON file")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    return parser


def _supports_account_creation(site: str, profiles_path: Optional[str]) -> bool:
    profile = load_site_profile(site, profiles_path)
    cls = STRATEGIES.get(profile.strategy)
    return bool(cls and cls.supports_account_creation)


def parse_invocation(site: str, words: Sequence[str], *, supports_account_creation: bool) -> Invocation:
    """Split words into optional auth-mode token and the (multi-word) search term."""
    words = [w for w in words if w.strip()]
    auth_mode = AuthMode.AUTO
    if supports_account_creation and len(words) >= 2 and words[0].lower() in AUTH_MODE_TOKENS:
        auth_mode = AUTH_MODE_TOKENS[words[0].lower()]
        words = words[1:]
    term = " ".join(words).strip()
    if not term:
        raise UsageError("search term is required")
    return Invocation(site=site.strip().lower(), auth_mode=auth_mode, search_term=term)


def _usage(parser: argparse.ArgumentParser, message: str, profiles_path: Optional[str]) -> int:
    parser.print_usage(sys.stderr)
    print(f"error: {message}", file=sys.stderr)
    try:
        print(f"available sites: {', '.join(available_sites(profiles_path))}", file=sys.stderr)
    except (OSError, ValueError) as e:
        print(f"could not read site profiles: {e}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        return _usage(parser, str(e), args.profiles)
    if args.headless:
        config = replace(config, headless=True)
    if args.log_level:
        config = replace(config, log_level=args.log_level.upper())
    profiles_path = args.profiles or config.site_profiles_path

    configure_logging(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        log_file=config.log_file,
        log_stdout=config.log_stdout,
        log_format=config.log_format,
    )

    try:
        invocation = parse_invocation(
            args.site,
            args.words,
            supports_account_creation=_supports_account_creation(args.site, profiles_path),
        )
    except (UnknownSiteError, UsageError) as e:
        return _usage(parser, str(e), profiles_path)
    except (OSError, ValueError) as e:
        # Unreadable or malformed profile file.
        return _usage(parser, f"invalid site profiles: {e}", profiles_path)

    try:
        result = asyncio.run(
            run_session(
                invocation.site,
                invocation.search_term,
                config,
                auth_mode=invocation.auth_mode,
                profiles_path=profiles_path,
            )
        )
    except KeyboardInterrupt:
        logger.warning("cli.interrupted")
        return 1
    except Exception as e:
        logger.exception("cli.fatal", error=str(e))
        return 1

    if result.success:
        logger.info("cli.completed", phases=[(r.phase.value, r.outcome.value) for r in result.history])
    else:
        logger.error(
            "cli.failed",
            failed_phase=result.failed_phase.value if result.failed_phase else None,
            error=result.error,
        )
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
