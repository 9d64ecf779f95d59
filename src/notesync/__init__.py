"""Local note client synchronization engine."""

__version__ = "0.3.0"
