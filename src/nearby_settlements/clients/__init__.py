"""HTTP clients for external lookup services."""
