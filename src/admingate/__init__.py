"""admin-gate: admin session security core."""

__version__ = "0.3.0"
