"""Database infrastructure for the approval kernel."""
