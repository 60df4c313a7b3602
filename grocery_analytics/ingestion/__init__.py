"""
Data Ingestion Module
"""
from .loader import DocumentLoader, DocumentFileConfig, LoadResult
from .records import Order, UserActivity, coerce_records

__all__ = [
    "DocumentLoader",
    "DocumentFileConfig",
    "LoadResult",
    "Order",
    "UserActivity",
    "coerce_records",
]
