"""hlgrep — grep with human-friendly, syntax-highlighted search output."""

__version__ = "0.1.0"
