"""Platform integrations (object storage)."""
