"""
Data Transformation Module
"""
from .enrichers import CustomerEnricher, enrich_customer_data
from .transformers import AnalyticsTransformer

__all__ = [
    "CustomerEnricher",
    "enrich_customer_data",
    "AnalyticsTransformer",
]
