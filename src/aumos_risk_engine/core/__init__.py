"""Domain models, repository contracts and async services."""
