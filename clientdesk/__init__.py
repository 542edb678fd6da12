"""
clientdesk: storage and account core for the client management backend.

Routers and controllers live outside this package; they call the entity
repositories and the auth service defined here.
"""

__version__ = "0.1.0"
