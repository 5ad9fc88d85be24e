"""Expression call aggregation and cross-species homology resolution engine."""

__version__ = "0.1.0"
