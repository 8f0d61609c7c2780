"""Immutable value types shared by providers, services and the store."""
