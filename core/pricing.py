"""
Order pricing: unit price, line total, subtotal, discount and final amount.

The functions here are pure. Catalog rows come in through a Catalog built per
request, so prices are always read from the database at order time and frozen
onto the order as snapshots.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from core.constants import CENT, HUNDRED, MAX_ITEM_QUANTITY, MAX_MONEY
from core.exceptions import ValidationError
from core.utils import money


class ModifierSnapshot(NamedTuple):
    modifier_id: int
    name: str
    price: Decimal
    cost: Decimal


class LineItemQuote(NamedTuple):
    product: Any
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    modifiers: List[ModifierSnapshot]


class OrderTotals(NamedTuple):
    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    amount: Decimal
    discount_note: Optional[str]


def coerce_quantity(value) -> int:
    """
    Integer >= 1; anything invalid or non-positive becomes 1.
    Quantities above MAX_ITEM_QUANTITY are rejected.
    """
    if isinstance(value, bool):
        return 1
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return 1
    if not d.is_finite():
        return 1
    if d > MAX_ITEM_QUANTITY:
        raise ValidationError(f'quantity cannot exceed {MAX_ITEM_QUANTITY}')
    n = int(d)
    return n if n >= 1 else 1


def clamp_discount_percent(value) -> Decimal:
    """Clamp to [0, 100]. Missing or non-numeric input is 0."""
    if value is None or value == '' or isinstance(value, bool):
        return Decimal('0')
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not pct.is_finite():
        return Decimal('0')
    pct = max(Decimal('0'), min(HUNDRED, pct))
    return pct.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_line_item(product, requested_modifier_ids: Iterable, quantity, modifier_lookup: Dict[int, Any]) -> LineItemQuote:
    """
    Price one line. Unknown, inactive and repeated modifier ids are dropped
    without error; the rest are snapshotted with their current name/price/cost.
    """
    qty = coerce_quantity(quantity)
    snapshots = []
    seen = set()
    for raw_id in requested_modifier_ids or []:
        try:
            mid = int(raw_id)
        except (TypeError, ValueError):
            continue
        if mid in seen:
            continue
        modifier = modifier_lookup.get(mid)
        if modifier is None or not modifier.is_active:
            continue
        seen.add(mid)
        snapshots.append(ModifierSnapshot(modifier.id, modifier.name, modifier.price, modifier.cost))
    unit_price = money(product.price + sum((s.price for s in snapshots), Decimal('0')))
    line_total = money(unit_price * qty)
    if line_total > MAX_MONEY:
        raise ValidationError('Line total is too large')
    return LineItemQuote(
        product=product,
        quantity=qty,
        unit_price=unit_price,
        line_total=line_total,
        modifiers=snapshots,
    )


def compute_order_totals(line_totals: Iterable[Decimal], discount_percent, discount_note=None) -> OrderTotals:
    """subtotal -> clamped discount -> amount. The note only survives a non-zero discount."""
    subtotal = money(sum(line_totals, Decimal('0')))
    if subtotal > MAX_MONEY:
        raise ValidationError('Order total is too large')
    pct = clamp_discount_percent(discount_percent)
    discount_amount = money(subtotal * pct / HUNDRED)
    note = None
    if pct > 0 and discount_note is not None:
        note = str(discount_note).strip() or None
    return OrderTotals(
        subtotal=subtotal,
        discount_percent=pct,
        discount_amount=discount_amount,
        amount=subtotal - discount_amount,
        discount_note=note,
    )


class Catalog:
    """Products and modifiers by id, as read for one request."""

    def __init__(self, products, modifiers):
        self.products = {p.id: p for p in products}
        self.modifiers = {m.id: m for m in modifiers}

    @classmethod
    def load(cls, product_ids, modifier_ids):
        """Active products and the requested modifiers (inactive ones are filtered in pricing)."""
        from core.models import Modifier, Product

        products = Product.objects.filter(id__in=set(product_ids), is_active=True)
        modifiers = Modifier.objects.filter(id__in=set(modifier_ids)) if modifier_ids else []
        return cls(products, modifiers)

    @classmethod
    def for_items(cls, items):
        product_ids, modifier_ids = requested_ids(items)
        return cls.load(product_ids, modifier_ids)


def normalize_item_requests(items) -> List[Dict[str, Any]]:
    """Validate the shape of the client's item list: [{product_id, quantity?, modifier_ids?}, ...]."""
    if not isinstance(items, list) or not items:
        raise ValidationError('At least one item is required')
    out = []
    for it in items:
        if not isinstance(it, dict):
            raise ValidationError('Each item must be an object')
        try:
            product_id = int(it.get('product_id'))
        except (TypeError, ValueError):
            raise ValidationError('Each item needs a product_id')
        modifier_ids = it.get('modifier_ids') or []
        if not isinstance(modifier_ids, list):
            modifier_ids = []
        out.append({
            'product_id': product_id,
            'quantity': it.get('quantity', 1),
            'modifier_ids': modifier_ids,
        })
    return out


def requested_ids(items):
    product_ids = set()
    modifier_ids = set()
    for it in items:
        product_ids.add(it['product_id'])
        for mid in it['modifier_ids']:
            try:
                modifier_ids.add(int(mid))
            except (TypeError, ValueError):
                continue
    return product_ids, modifier_ids


def build_quotes(items, catalog: Catalog) -> List[LineItemQuote]:
    """Quote every normalized item. Any product missing from the catalog fails the whole batch."""
    missing = {it['product_id'] for it in items} - set(catalog.products)
    if missing:
        raise ValidationError('One or more products not found')
    return [
        resolve_line_item(
            catalog.products[it['product_id']],
            it['modifier_ids'],
            it['quantity'],
            catalog.modifiers,
        )
        for it in items
    ]
