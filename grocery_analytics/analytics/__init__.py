"""
Analytics Module
"""
from .orders import OrderAggregator, OrderSummary, DateRange
from .inventory import DateFilter, ProductStats, aggregate_product_stats
from .tracking import ActivityTracker, BoundedHistory

__all__ = [
    "OrderAggregator",
    "OrderSummary",
    "DateRange",
    "DateFilter",
    "ProductStats",
    "aggregate_product_stats",
    "ActivityTracker",
    "BoundedHistory",
]
