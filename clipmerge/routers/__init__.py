"""
FastAPI routers for the merge service.
"""

from clipmerge.routers import health

__all__ = ["health"]
