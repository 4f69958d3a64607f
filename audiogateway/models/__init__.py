"""Data models for the application."""

from audiogateway.models.video import AudioFormat, VideoSummary, format_duration, parse_duration

__all__ = [
    "AudioFormat",
    "VideoSummary",
    "format_duration",
    "parse_duration",
]
