"""SMM panel provider order synchronization engine."""

__version__ = "1.0.0"
