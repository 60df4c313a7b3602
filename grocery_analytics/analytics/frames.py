"""
Polars frame builders

Flattens validated orders into two frames the aggregations run on:
- one row per order
- one row per cart line item

Both frames keep the input order in an ``order_index`` column, so grouped
results can be ranked with first-encountered tie breaking.
"""

from typing import Iterable, List

import polars as pl

from grocery_analytics.ingestion.records import Order

ORDERS_SCHEMA = {
    "order_index": pl.Int64,
    "order_id": pl.Utf8,
    "placed_at": pl.Datetime("us"),
    "order_date": pl.Date,
    "status": pl.Utf8,
    "is_cancelled": pl.Boolean,
    "is_delivered": pl.Boolean,
    "customer_name": pl.Utf8,
    "city": pl.Utf8,
    "phone": pl.Utf8,
    "grand_total": pl.Float64,
    "item_count": pl.Int64,
}

LINE_ITEMS_SCHEMA = {
    "order_index": pl.Int64,
    "order_id": pl.Utf8,
    "placed_at": pl.Datetime("us"),
    "order_date": pl.Date,
    "is_cancelled": pl.Boolean,
    "title": pl.Utf8,
    "category": pl.Utf8,
    "product_group": pl.Utf8,
    "price": pl.Float64,
    "quantity": pl.Float64,
}


def orders_frame(orders: Iterable[Order]) -> pl.DataFrame:
    """One row per order"""
    rows = []
    for index, order in enumerate(orders):
        rows.append({
            "order_index": index,
            "order_id": order.id,
            "placed_at": order.placed_at,
            "order_date": order.placed_at.date() if order.placed_at else None,
            "status": order.status.value if order.status else None,
            "is_cancelled": order.is_cancelled,
            "is_delivered": order.is_delivered,
            "customer_name": order.customer_name,
            "city": order.city,
            "phone": order.phone,
            "grand_total": order.grand_total,
            "item_count": len(order.cart_items),
        })

    if not rows:
        return pl.DataFrame(schema=ORDERS_SCHEMA)
    return pl.from_dicts(rows, schema=ORDERS_SCHEMA)


def line_items_frame(orders: Iterable[Order]) -> pl.DataFrame:
    """One row per cart line item; ``quantity`` stays null when missing"""
    rows: List[dict] = []
    for index, order in enumerate(orders):
        for item in order.cart_items:
            rows.append({
                "order_index": index,
                "order_id": order.id,
                "placed_at": order.placed_at,
                "order_date": order.placed_at.date() if order.placed_at else None,
                "is_cancelled": order.is_cancelled,
                "title": item.title,
                "category": item.category,
                "product_group": item.product_group.value,
                "price": item.price,
                "quantity": item.quantity,
            })

    if not rows:
        return pl.DataFrame(schema=LINE_ITEMS_SCHEMA)
    return pl.from_dicts(rows, schema=LINE_ITEMS_SCHEMA)


def ranked_pairs(df: pl.DataFrame, key: str, value: str, n: int) -> List[tuple]:
    """Top ``n`` (key, value) pairs by value, descending, ties in frame order"""
    if df.is_empty():
        return []
    ranked = df.sort(value, descending=True, maintain_order=True).head(n)
    return [(row[0], float(row[1])) for row in ranked.select([key, value]).rows()]
