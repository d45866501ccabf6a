"""Shared counter store adapters.

The rate limiter depends on the abstract contract in ``base`` only. Redis is
the production backend; the in-memory backend keeps per-process counters for
local development and tests.
"""
