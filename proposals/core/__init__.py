"""Core domain: models, errors, permissions and the approval workflow."""
