"""
Grocery Storefront Analytics

Order, customer and inventory analytics over the storefront's documents.
"""

__version__ = "1.0.0"
