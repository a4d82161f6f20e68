"""Core document models, property store, and protocols."""
