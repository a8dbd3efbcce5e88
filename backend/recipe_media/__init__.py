"""Recipe media upload and processing pipeline."""

__version__ = "0.1.0"
