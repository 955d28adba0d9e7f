"""Concrete keyring and engine implementations."""
