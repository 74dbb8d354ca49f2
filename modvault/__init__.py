"""Storage backends and stashing for a Go module proxy."""

__version__ = "0.1.0"