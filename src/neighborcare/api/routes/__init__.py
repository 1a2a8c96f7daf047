"""Route group exports."""

from . import channels, health, incidents, responders

__all__ = ["health", "responders", "incidents", "channels"]
