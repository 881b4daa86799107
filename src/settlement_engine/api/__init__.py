"""Settlement engine HTTP API."""
