"""Reelhub: multi-provider media aggregation with resumable playback sessions."""

__version__ = "0.1.0"
