"""Multi-country medical appointment booking pipeline."""

__version__ = "0.1.0"
