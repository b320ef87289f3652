"""HTTP application layer."""
