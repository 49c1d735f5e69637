"""One-time download links: issue single-use links for stored files and redeem them once."""

__version__ = "0.1.0"
