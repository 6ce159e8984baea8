"""Ticket clock application: drift-corrected clock, countdown and helper server."""

__all__ = [
    "accuracy",
    "config",
    "countdown",
    "display",
    "platform_time",
    "server",
    "session",
]
