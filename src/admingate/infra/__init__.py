"""Infrastructure adapters (credential store, counter store, geolocation)."""
