"""XTrend: hourly trend snapshots and momentum signals."""

__version__ = "0.1.0"
