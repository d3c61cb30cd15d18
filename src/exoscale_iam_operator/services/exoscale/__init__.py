"""Exoscale IAM API client."""
