"""Turn lecture slide PDFs into synthesized markdown study notes."""

__version__ = "0.1.0"
