"""Sales statistics: revenue, cost, profit, top products/toppings and discounts over a date range."""
from datetime import datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.utils import timezone

from .constants import DEFAULT_STATS_PERIOD, HUNDRED, STATS_PERIODS, STATS_TOP_N
from .models import Order
from .utils import money


def _local_midnight(d):
    return timezone.make_aware(datetime.combine(d, time.min))


def resolve_period(period, start=None, end=None, now=None):
    """
    Turn a period name into (period, start, end) datetimes.
    custom needs both start and end dates; otherwise (and for unknown names) falls back to today.
    """
    now = now or timezone.now()
    today = timezone.localtime(now).date()
    if period not in STATS_PERIODS:
        period = DEFAULT_STATS_PERIOD
    if period == 'custom':
        if start and end:
            return period, _local_midnight(start), timezone.make_aware(datetime.combine(end, time.max))
        period = DEFAULT_STATS_PERIOD

    if period == 'yesterday':
        return period, _local_midnight(today - timedelta(days=1)), _local_midnight(today)
    if period == 'week':
        return period, now - timedelta(days=7), now
    if period == 'month':
        return period, _local_midnight(today.replace(day=1)), now
    if period == 'all':
        return period, datetime(1970, 1, 1, tzinfo=dt_timezone.utc), now
    return DEFAULT_STATS_PERIOD, _local_midnight(today), now


def _top(rows, key):
    return sorted(rows.values(), key=lambda r: r[key], reverse=True)[:STATS_TOP_N]


def compute_stats(start, end):
    """Full rollup over non-deleted orders created in [start, end]. Recomputed on every call."""
    orders = list(
        Order.objects.filter(created_at__gte=start, created_at__lte=end)
        .prefetch_related('items__product', 'items__modifiers')
        .order_by('-created_at')
    )

    total_revenue = Decimal('0')
    total_cost = Decimal('0')
    total_discount = Decimal('0')
    product_sales = {}
    topping_sales = {}

    for o in orders:
        total_revenue += o.amount
        total_discount += o.discount_amount
        for item in o.items.all():
            qty = item.quantity
            total_cost += item.product.cost * qty
            row = product_sales.setdefault(item.product_id, {
                'product_id': item.product_id,
                'name': item.product.name,
                'quantity': 0,
                'revenue': Decimal('0'),
            })
            row['quantity'] += qty
            row['revenue'] += item.line_total
            for mod in item.modifiers.all():
                total_cost += mod.cost_at_time * qty
                trow = topping_sales.setdefault(mod.modifier_id, {
                    'modifier_id': mod.modifier_id,
                    'name': mod.name_at_time,
                    'count': 0,
                    'revenue': Decimal('0'),
                })
                trow['count'] += qty
                trow['revenue'] += mod.price_at_time * qty

    total_orders = len(orders)
    total_profit = total_revenue - total_cost
    avg_order_value = money(total_revenue / total_orders) if total_orders else Decimal('0')
    profit_margin = money(total_profit / total_revenue * HUNDRED) if total_revenue > 0 else Decimal('0')

    discounted = [o for o in orders if o.discount_percent > 0]
    avg_discount_percent = (
        money(sum((o.discount_percent for o in discounted), Decimal('0')) / len(discounted))
        if discounted else Decimal('0')
    )

    return {
        'summary': {
            'total_revenue': total_revenue,
            'total_orders': total_orders,
            'total_cost': total_cost,
            'total_profit': total_profit,
            'avg_order_value': avg_order_value,
            'profit_margin': profit_margin,
        },
        'top_products': _top(product_sales, 'quantity'),
        'top_toppings': _top(topping_sales, 'count'),
        'discount_breakdown': {
            'orders_with_discount': len(discounted),
            'total_discount_given': total_discount,
            'avg_discount_percent': avg_discount_percent,
            'discounted_orders': [
                {
                    'id': o.id,
                    'customer_name': o.customer_name,
                    'subtotal': o.subtotal,
                    'discount_percent': o.discount_percent,
                    'discount_amount': o.discount_amount,
                    'discount_note': o.discount_note,
                    'final_amount': o.amount,
                    'created_at': o.created_at,
                }
                for o in discounted
            ],
        },
    }


def latest_order_at():
    """created_at of the newest non-deleted order, or None."""
    return Order.objects.order_by('-created_at').values_list('created_at', flat=True).first()
