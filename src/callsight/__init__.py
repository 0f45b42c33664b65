"""Call transcript analysis and intent clustering."""

__version__ = "0.1.0"
