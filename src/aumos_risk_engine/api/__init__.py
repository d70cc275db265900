"""HTTP surface: FastAPI router, request schemas and error mapping."""
