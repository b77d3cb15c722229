"""Module reconstruction for source trees recovered from JavaScript bundles."""

__version__ = "0.1.0"
