"""Shared constants for validation, list limits and stats."""
from decimal import Decimal

CENT = Decimal('0.01')
HUNDRED = Decimal('100')

STATS_PERIODS = ('today', 'yesterday', 'week', 'month', 'all', 'custom')
DEFAULT_STATS_PERIOD = 'today'
STATS_TOP_N = 5

ORDER_LIST_DEFAULT_LIMIT = 100
ORDER_LIST_MAX_LIMIT = 500
CUSTOMER_LIST_MAX_LIMIT = 50

TRUE_VALUES = frozenset({'1', 'true', 'yes', 'on'})
FALSE_VALUES = frozenset({'0', 'false', 'no', 'off'})

# Largest quantity accepted on one order line.
MAX_ITEM_QUANTITY = 9999
# Money columns are DecimalField(max_digits=12, decimal_places=2).
MONEY_MAX_DIGITS = 12
MAX_MONEY = Decimal('9999999999.99')
