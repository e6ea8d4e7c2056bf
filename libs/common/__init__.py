"""Settings and error types shared across the service."""
