"""Shared helpers: errors, rate limiting, caching, geo and date handling."""
