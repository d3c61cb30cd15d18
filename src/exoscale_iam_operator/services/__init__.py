"""Provider API services."""
