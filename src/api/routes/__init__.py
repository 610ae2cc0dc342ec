"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import batches, files, jobs, orders, products, status

__all__ = [
    "batches",
    "files",
    "jobs",
    "orders",
    "products",
    "status",
]
