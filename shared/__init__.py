"""
Shared utilities for the checkout automation engine.

- `shared.config` for environment-based configuration
- `shared.logging` for structlog-based structured logging

The API, the RQ worker and the engine itself treat `shared/` as read-only
infrastructure and avoid service-specific coupling here.
"""
