"""API layer: tool catalog, dispatcher, orchestration loop, event stream and HTTP routes."""
