"""Infrastructure: telemetry and component health."""
