"""TrendRadar: hot-list aggregation with multi-stage title deduplication."""
__version__ = "1.2.0"
