"""CoverCast: restaurant correlation discovery and sales prediction."""

__version__ = "0.1.0"
