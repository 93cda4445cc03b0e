"""Phoenix agent: a single-operator chat bridge to AI command-line backends."""

__version__ = "0.1.0"
