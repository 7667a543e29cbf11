"""Application services: fetching, probing, scoring, resolution and playback sessions."""
