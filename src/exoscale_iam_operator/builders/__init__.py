"""Builders turning custom resources into provider clients."""
