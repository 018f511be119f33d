"""Event stores for event-sourced applications: in-memory, recording and MongoDB."""

__version__ = "0.1.0"