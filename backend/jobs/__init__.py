"""
Background jobs for CoverCast.

Jobs:
- discover_correlations: Nightly correlation discovery followed by global/regional pooling
"""
