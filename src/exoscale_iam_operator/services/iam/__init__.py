"""IAM key adapter interface."""
