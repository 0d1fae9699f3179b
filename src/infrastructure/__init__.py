"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- counters: Redis counters for rate limiting
- credentials: HTTP client for the credential endpoint
- storage: Object storage upload API (ImageKit)

These wrappers translate between external formats and our domain models.
"""
