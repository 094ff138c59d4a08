"""Rate limiting adapters.

This package provides a small abstraction layer so the service can start with
an in-memory sliding-window limiter and later migrate to a shared store
without changing the HTTP layer.
"""
