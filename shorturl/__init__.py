"""Short URL service: cache-aside resolver, click reconciliation and rate limiting."""

__version__ = "1.0.0"
