"""Blog Post API: a FastAPI CRUD service over a document store."""
