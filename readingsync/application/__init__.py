"""Application layer: FastAPI app, controller and settings."""
