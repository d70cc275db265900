"""Storage adapters: in-memory store and SQLAlchemy repositories."""
