"""Configuration loading, secrets and logging."""
