"""Bearer-token authentication and rate limiting."""
