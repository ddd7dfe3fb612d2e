"""topoctl — declarative three-tier topology synthesis."""

__version__ = "0.1.0"
