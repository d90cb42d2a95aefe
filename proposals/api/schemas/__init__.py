"""Request and response schemas for the proposal API."""
