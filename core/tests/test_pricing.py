from decimal import Decimal
from types import SimpleNamespace

import pytest

from core.constants import MAX_ITEM_QUANTITY
from core.exceptions import ValidationError
from core.pricing import (
    Catalog,
    build_quotes,
    clamp_discount_percent,
    coerce_quantity,
    compute_order_totals,
    normalize_item_requests,
    resolve_line_item,
)


def _product(pk, price, cost='0'):
    return SimpleNamespace(id=pk, name=f'Product {pk}', price=Decimal(price), cost=Decimal(cost), is_active=True)


def _modifier(pk, name, price, cost='0', is_active=True):
    return SimpleNamespace(id=pk, name=name, price=Decimal(price), cost=Decimal(cost), is_active=is_active)


def test_line_item_with_topping_and_discount():
    product = _product(1, '100')
    nuts = _modifier(7, 'Nuts', '20', '5')
    quote = resolve_line_item(product, [7], 2, {7: nuts})
    assert quote.unit_price == Decimal('120.00')
    assert quote.line_total == Decimal('240.00')
    assert quote.modifiers[0].name == 'Nuts'
    assert quote.modifiers[0].cost == Decimal('5')

    totals = compute_order_totals([quote.line_total], 10)
    assert totals.subtotal == Decimal('240.00')
    assert totals.discount_amount == Decimal('24.00')
    assert totals.amount == Decimal('216.00')


def test_unknown_inactive_and_repeated_modifiers_are_dropped():
    product = _product(1, '50')
    lookup = {
        1: _modifier(1, 'Cheese', '10'),
        2: _modifier(2, 'Old sauce', '99', is_active=False),
    }
    quote = resolve_line_item(product, [1, 1, 2, 404, 'x'], 1, lookup)
    assert [m.modifier_id for m in quote.modifiers] == [1]
    assert quote.unit_price == Decimal('60.00')


@pytest.mark.parametrize('raw, expected', [
    (3, 3),
    ('2', 2),
    (0, 1),
    (-4, 1),
    (None, 1),
    ('abc', 1),
    (True, 1),
    (float('inf'), 1),
])
def test_coerce_quantity(raw, expected):
    assert coerce_quantity(raw) == expected


@pytest.mark.parametrize('raw, expected', [
    (None, Decimal('0.00')),
    ('', Decimal('0')),
    (-5, Decimal('0.00')),
    (150, Decimal('100.00')),
    ('12.5', Decimal('12.50')),
    ('nope', Decimal('0')),
    ('NaN', Decimal('0')),
])
def test_clamp_discount_percent(raw, expected):
    assert clamp_discount_percent(raw) == expected


def test_amount_matches_subtotal_minus_discount():
    totals = compute_order_totals([Decimal('33.33'), Decimal('66.67')], '12.5')
    assert totals.subtotal == Decimal('100.00')
    assert totals.discount_amount == Decimal('12.50')
    assert totals.amount == totals.subtotal - totals.discount_amount


def test_discount_is_rounded_half_up():
    totals = compute_order_totals([Decimal('0.05')], 50)
    assert totals.discount_amount == Decimal('0.03')
    assert totals.amount == Decimal('0.02')


def test_note_dropped_without_discount():
    assert compute_order_totals([Decimal('10')], 0, 'Staff').discount_note is None
    assert compute_order_totals([Decimal('10')], 5, '   ').discount_note is None
    assert compute_order_totals([Decimal('10')], 5, ' Staff ').discount_note == 'Staff'


def test_normalize_item_requests_rejects_bad_shapes():
    with pytest.raises(ValidationError):
        normalize_item_requests([])
    with pytest.raises(ValidationError):
        normalize_item_requests(None)
    with pytest.raises(ValidationError):
        normalize_item_requests(['oops'])
    with pytest.raises(ValidationError):
        normalize_item_requests([{'quantity': 2}])

    items = normalize_item_requests([{'product_id': '3', 'modifier_ids': 'bad'}])
    assert items == [{'product_id': 3, 'quantity': 1, 'modifier_ids': []}]


def test_build_quotes_fails_when_a_product_is_missing():
    catalog = Catalog([_product(1, '10')], [])
    items = normalize_item_requests([{'product_id': 1}, {'product_id': 2}])
    with pytest.raises(ValidationError) as exc:
        build_quotes(items, catalog)
    assert exc.value.message == 'One or more products not found'


def test_quantity_above_cap_is_rejected():
    assert coerce_quantity(MAX_ITEM_QUANTITY) == MAX_ITEM_QUANTITY
    with pytest.raises(ValidationError):
        coerce_quantity(MAX_ITEM_QUANTITY + 1)
    with pytest.raises(ValidationError):
        coerce_quantity(10 ** 30)


def test_line_total_beyond_money_column_is_rejected():
    product = _product(1, '9999999999.00')
    with pytest.raises(ValidationError) as exc:
        resolve_line_item(product, [], 2, {})
    assert exc.value.message == 'Line total is too large'


def test_discount_percent_rounds_half_up():
    assert clamp_discount_percent('12.345') == Decimal('12.35')
    assert clamp_discount_percent('0.125') == Decimal('0.13')
