"""ORM models for the durable collaborator store."""
