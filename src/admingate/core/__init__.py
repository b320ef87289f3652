"""Core domain: errors, security, models."""
