"""Core infrastructure for the ticket clock: offsets, fetchers and timers."""

__all__ = [
    "fetchers",
    "logging",
    "offsets",
    "registry",
    "time_sync",
    "timers",
]
