"""Infrastructure adapters: durable database and TTL store."""
