"""FinQuery REST API."""
