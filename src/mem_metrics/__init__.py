"""mem_metrics - publish host memory statistics as CloudWatch custom metrics."""

__version__ = "0.1.0"
