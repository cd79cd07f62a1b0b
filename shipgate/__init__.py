"""shipgate: governed release runs."""

__version__ = "0.4.0"
