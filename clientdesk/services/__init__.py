"""
High-level use cases for the clientdesk backend.

Each service orchestrates repositories and adapters to implement business
rules (register, authenticate, reset a password). Routers call these services
instead of touching the gateway directly.
"""
