"""Student reports backend: FastAPI service over Firestore and Firebase Storage."""

# Expose the application modules when the package is loaded.
from . import app  # noqa: F401

__all__ = ["app"]
