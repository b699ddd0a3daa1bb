"""Core: configuration, canonical enums and the exception hierarchy."""
