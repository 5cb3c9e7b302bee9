"""Multi-target package builds and downstream release publishing."""

__version__ = "0.1.0"
