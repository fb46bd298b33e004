"""Configuration, metric naming, queue count aggregation and external-scaler request handling."""

__version__ = "0.1.0"
__all__ = ["config", "naming", "queue_pinger", "handlers"]