"""Solar Sign - contract signing service."""

__version__ = "0.1.0"
