"""Audio acquisition gateway for the two-deck DJ workstation."""

__version__ = "1.0.0"
