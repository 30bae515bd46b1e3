"""Template value resolution, caching and rate limiting for the remote configuration API."""

__version__ = "0.1.0"
