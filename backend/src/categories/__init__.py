"""Document category management."""

from .schemas import CategoryCreate, CategoryUpdate, CategoryResponse, CategoryListResponse
from .router import router

__all__ = [
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryResponse",
    "CategoryListResponse",
    "router",
]
