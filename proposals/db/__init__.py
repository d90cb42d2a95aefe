"""SQL persistence for proposals."""
