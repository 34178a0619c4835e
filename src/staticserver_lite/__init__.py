"""staticserver-lite: per-folder static preview servers with live request interception."""

__version__ = "0.1.0"
