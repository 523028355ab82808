"""Waitlist administration API: retention cleanup, user admin, directory readers."""

__version__ = "0.1.0"
