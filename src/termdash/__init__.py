"""termdash - terminal live dashboard for host metrics and external data."""

__version__ = "0.1.0"
