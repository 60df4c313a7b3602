"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult

__all__ = [
    "DataValidator",
    "ValidationResult",
]
