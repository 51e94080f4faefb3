"""Package feeds: local directories and remote OData endpoints."""
