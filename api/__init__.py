"""HTTP routers for the media edit engine."""
