"""
Builders for label job requests that do not come from a live checkout.

Manual inventory labels:
    One label per selected product entry. Entries are grouped by
    (product_id, tier_label) in first-seen order, so the backend sees one
    line with a quantity instead of many single-unit lines.

Order reprint labels:
    Lines of already-completed orders are flattened into cart items; the
    first order supplies the sale context.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from models.label import PrintCartItem, PrintSource, SaleContext, parse_timestamp


def build_manual_cart_items(
    product_ids: Sequence[str],
    tier_labels: Sequence[Optional[str]] = (),
) -> List[PrintCartItem]:
    """
    Group one-label-per-entry selections into cart items.

    Args:
        product_ids: One entry per label to print (repeats allowed)
        tier_labels: Optional tier per entry, matched by position

    Returns:
        Cart items in first-seen order of (product_id, tier_label)
    """
    counts: Dict[Tuple[str, Optional[str]], int] = {}
    for index, product_id in enumerate(product_ids):
        tier = tier_labels[index] if index < len(tier_labels) else None
        key = (str(product_id), tier or None)
        counts[key] = counts.get(key, 0) + 1

    return [
        PrintCartItem(product_id=product_id, quantity=quantity, tier_label=tier)
        for (product_id, tier), quantity in counts.items()
    ]


def manual_sale_context(
    location_id: Optional[str] = None,
    location_name: Optional[str] = None,
    staff_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SaleContext:
    """Sale context for labels printed from inventory, outside any sale."""
    return SaleContext(
        order_id=f"manual-{uuid.uuid4().hex[:8]}",
        sold_at=now or datetime.now(timezone.utc),
        staff_id=staff_id,
        location_id=location_id,
        location_name=location_name,
        order_type="manual_print",
        print_source=PrintSource.MANUAL_INVENTORY,
    )


def build_order_cart_items(orders: Sequence[Mapping[str, Any]]) -> List[PrintCartItem]:
    """
    Flatten order lines into cart items, preserving order and line order.

    Each order is a mapping with an ``items`` list of
    ``{product_id, quantity, unit_price?}``; orders without items are skipped.
    """
    cart: List[PrintCartItem] = []
    for order in orders:
        for line in order.get("items") or []:
            cart.append(PrintCartItem.from_dict({
                "product_id": line.get("product_id"),
                "quantity": line.get("quantity", 1),
                "unit_price": line.get("unit_price"),
            }))
    return cart


def order_sale_context(
    orders: Sequence[Mapping[str, Any]],
    location_id: Optional[str] = None,
    location_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SaleContext:
    """Sale context for reprinting labels of completed orders (first order is primary)."""
    first = orders[0] if orders else {}
    order_id = first.get("id") or f"order-{uuid.uuid4().hex[:8]}"
    sold_at = parse_timestamp(first.get("completed_at")) or now or datetime.now(timezone.utc)
    return SaleContext(
        order_id=str(order_id),
        sold_at=sold_at,
        customer_id=first.get("customer_id") or None,
        location_id=location_id,
        location_name=location_name,
        order_type="order_reprint",
        print_source=PrintSource.ORDER_LABELS,
    )
