"""HTTP API for the proposal workflow."""
