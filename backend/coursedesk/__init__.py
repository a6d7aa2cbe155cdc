"""Collection management engine for the course platform admin consoles."""

__version__ = "0.1.0"
