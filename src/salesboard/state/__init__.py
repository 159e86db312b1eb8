"""State layer.

This package owns the authoritative in-memory unit status map and the
registry of live connections.  Only the protocol handler mutates them.
"""
