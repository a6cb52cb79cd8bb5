"""chatroute: handler registration and event routing for chat bots."""

__version__ = "0.1.0"
