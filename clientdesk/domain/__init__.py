"""
Domain types for the clientdesk backend.

Repositories hand these dataclasses to callers; the schemaless record shape
stays behind the codec and the gateway.
"""
