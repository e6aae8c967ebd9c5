"""Switchboard -- multi-session tool-calling chat server."""

__version__ = "1.0.0"
