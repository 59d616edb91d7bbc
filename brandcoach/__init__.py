"""Brand coach: guided conversational extraction engine for branding interviews."""

__version__ = "0.1.0"
