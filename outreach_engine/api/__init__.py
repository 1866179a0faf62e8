"""HTTP API for the outreach workflow engine."""
