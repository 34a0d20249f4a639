"""panelhub: account aggregation and scheduling engine for AI-reselling panels."""

__version__ = "0.1.0"
