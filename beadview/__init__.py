"""beadview: terminal graph view of bead work items."""

__version__ = "0.1.0"
