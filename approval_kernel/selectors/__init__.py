"""Read-only query selectors for the approval kernel."""
