"""SQLAlchemy models backing the on-device durable store."""
