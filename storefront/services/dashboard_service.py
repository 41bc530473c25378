from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.models import Order, OrderItem, OrderStatus, PAID_STATUSES, Product, ProductVariant
from storefront.serializers import serialize_order_summary
from storefront.utils import as_utc


def build_daily_revenue(
    paid_orders: Iterable[Tuple[datetime, int]],
    days: int,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Zero-filled revenue series, oldest first, ending on today's UTC date.

    ``paid_orders`` yields ``(created_at, subtotal_cents)`` pairs; orders
    outside the window are ignored.
    """
    today = as_utc(now or datetime.now(timezone.utc)).date()
    first_day = today - timedelta(days=days - 1)

    totals: Counter = Counter()
    for created_at, subtotal_cents in paid_orders:
        totals[as_utc(created_at).date()] += subtotal_cents or 0

    series: List[Dict[str, Any]] = []
    day: date = first_day
    while day <= today:
        series.append({"date": day.isoformat(), "revenue_cents": totals.get(day, 0)})
        day += timedelta(days=1)
    return series


def rank_top_products(rows: Iterable[Tuple[Any, ...]], limit: int) -> List[Dict[str, Any]]:
    """
    Aggregate ``(product_id, name, slug, quantity, price_cents)`` rows by product.

    Products keep the order they were first seen in, so ties stay stable
    under the descending sort on units sold.
    """
    products: Dict[str, Dict[str, Any]] = {}
    for product_id, name, slug, quantity, price_cents in rows:
        entry = products.setdefault(
            product_id,
            {"id": product_id, "name": name, "slug": slug, "units_sold": 0, "revenue_cents": 0},
        )
        entry["units_sold"] += quantity
        entry["revenue_cents"] += (price_cents or 0) * quantity
    return sorted(products.values(), key=lambda entry: entry["units_sold"], reverse=True)[:limit]


class DashboardService:
    """Back-office headline numbers: revenue totals, daily series, best sellers, latest orders."""

    def __init__(self, db_session: Session, config: type[Config] = Config) -> None:
        self.db = db_session
        self.config = config

    def summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now or datetime.now(timezone.utc))
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        paid_orders = (
            self.db.query(Order.id, Order.created_at, Order.subtotal_cents)
            .filter(Order.status.in_(PAID_STATUSES))
            .order_by(Order.created_at)
            .all()
        )
        total_revenue = sum(row.subtotal_cents or 0 for row in paid_orders)
        month_revenue = sum(
            row.subtotal_cents or 0 for row in paid_orders if as_utc(row.created_at) >= month_start
        )

        total_orders = self.db.query(func.count(Order.id)).scalar() or 0
        pending_orders = (
            self.db.query(func.count(Order.id)).filter(Order.status == OrderStatus.PENDING).scalar() or 0
        )
        total_products = self.db.query(func.count(Product.id)).scalar() or 0

        recent_orders = (
            self.db.query(Order)
            .order_by(Order.created_at.desc())
            .limit(self.config.DASHBOARD_RECENT_ORDERS)
            .all()
        )

        return {
            "stats": {
                "total_revenue_cents": total_revenue,
                "month_revenue_cents": month_revenue,
                "total_orders": total_orders,
                "pending_orders": pending_orders,
                "total_products": total_products,
            },
            "daily_revenue": build_daily_revenue(
                ((row.created_at, row.subtotal_cents) for row in paid_orders),
                self.config.DASHBOARD_WINDOW_DAYS,
                now,
            ),
            "top_products": self.top_products([row.id for row in paid_orders]),
            "recent_orders": [serialize_order_summary(order) for order in recent_orders],
        }

    def top_products(self, paid_order_ids: List[str]) -> List[Dict[str, Any]]:
        if not paid_order_ids:
            return []
        rows = (
            self.db.query(
                Product.id,
                Product.name,
                Product.slug,
                OrderItem.quantity,
                OrderItem.price_cents,
            )
            .select_from(OrderItem)
            .join(ProductVariant, ProductVariant.id == OrderItem.variant_id)
            .join(Product, Product.id == ProductVariant.product_id)
            .filter(OrderItem.order_id.in_(paid_order_ids))
            .order_by(OrderItem.created_at)
            .all()
        )
        return rank_top_products(rows, self.config.DASHBOARD_TOP_PRODUCTS)
