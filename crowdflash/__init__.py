"""CrowdFlash: realtime presence and synchronized flash screen for event attendees."""

__version__ = "0.1.0"
