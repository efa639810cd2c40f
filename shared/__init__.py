"""
Shared utilities for the checkout funnel automation.

This package is intentionally small and focused. It provides:

- `shared.config` for environment-based configuration
- `shared.logging` for structlog-based structured logging

The `funnel` package should treat `shared/` as read-only infrastructure
code and avoid introducing site-specific coupling here.
"""
