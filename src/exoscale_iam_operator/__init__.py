"""Kubernetes operator managing Exoscale IAM keys scoped to SOS buckets."""

__version__ = "0.1.0"
