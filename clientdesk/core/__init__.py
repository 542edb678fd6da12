"""
Core utilities shared across the clientdesk backend.

This package hosts:
- configuration helpers (env vars, store selection, TTLs)
- cross-cutting services such as logging setup, the email adapter and
  password hashing.

Repositories and services depend on these primitives instead of reading
os.environ directly.
"""
