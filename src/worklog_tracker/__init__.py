"""Local repository activity tracker that turns commits into time-log entries."""

__version__ = "0.1.0"

__all__ = ["__version__"]
