"""User interaction helpers."""

from .progress import LoggingProgressSink, RichProgressSink, describe_phase, shorten_url

__all__ = [
    "LoggingProgressSink",
    "RichProgressSink",
    "describe_phase",
    "shorten_url",
]
