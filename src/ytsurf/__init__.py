"""Search, pick and play or download videos from the terminal."""

__version__ = "0.3.0"
