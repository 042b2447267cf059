"""
Shared helpers for the API: JSON serialization of values, request parsing and
the json_api decorator that maps errors to {"error": ...} responses.
"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import wraps

from django.http import Http404, HttpResponseNotAllowed, JsonResponse

from core.constants import CENT, FALSE_VALUES, MAX_MONEY, MONEY_MAX_DIGITS, TRUE_VALUES
from core.exceptions import ApiError, ValidationError

logger = logging.getLogger(__name__)


def money(value):
    """Quantize to two decimal places, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def serialize_value(v):
    """Decimals become strings and dates isoformat, recursing into dicts and lists."""
    if v is None:
        return None
    if isinstance(v, dict):
        return {k: serialize_value(vv) for k, vv in v.items()}
    if isinstance(v, (list, tuple)):
        return [serialize_value(x) for x in v]
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


def parse_json_body(request):
    """Return the JSON object in request.body ({} when empty). Raise ValidationError otherwise."""
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError('Invalid JSON')
    if not isinstance(body, dict):
        raise ValidationError('Invalid JSON')
    return body


def parse_decimal(value, field):
    """Parse a number from JSON or a query string. bool is rejected; NaN/Infinity too."""
    if value is None or value == '' or isinstance(value, bool):
        raise ValidationError(f'{field} must be a number')
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not d.is_finite():
        raise ValidationError(f'{field} must be a number')
    return d


def parse_money(value, field):
    """Non-negative amount that fits a money column, quantized to cents."""
    d = parse_decimal(value, field)
    if d < 0:
        raise ValidationError(f'{field} cannot be negative')
    if d > MAX_MONEY:
        raise ValidationError(f'{field} cannot exceed {MONEY_MAX_DIGITS} digits')
    d = money(d)
    if d > MAX_MONEY:
        raise ValidationError(f'{field} cannot exceed {MONEY_MAX_DIGITS} digits')
    return d


def parse_date(s):
    """Parse YYYY-MM-DD (extra characters after the date are ignored). None when missing or invalid."""
    if not s:
        return None
    try:
        return datetime.strptime(s[:10], '%Y-%m-%d').date()
    except (ValueError, TypeError):
        return None


def parse_bool(value):
    """True/False for recognised strings or JSON booleans, None otherwise."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    s = str(value).strip().lower()
    if s in TRUE_VALUES:
        return True
    if s in FALSE_VALUES:
        return False
    return None


def parse_limit(value, default, maximum):
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    if n <= 0:
        return default
    return min(n, maximum)


def parse_id_list(value):
    """'3,5, 8' -> [3, 5, 8]; non-numeric entries are skipped."""
    if not value:
        return []
    out = []
    for part in str(value).split(','):
        part = part.strip()
        if part.isdigit():
            out.append(int(part))
    return out


def json_api(view_func):
    """
    Decorator: run the view and turn errors into JSON.
    ApiError -> {"error": message} with its status; Http404 -> 404;
    405 from require_http_methods keeps its Allow header but gets a JSON body;
    anything else is logged and returned as a generic 500.
    """
    @wraps(view_func)
    def wrapped(request, *args, **kwargs):
        try:
            response = view_func(request, *args, **kwargs)
        except ApiError as e:
            return JsonResponse({'error': e.message}, status=e.status)
        except Http404:
            return JsonResponse({'error': 'Not found'}, status=404)
        except Exception:
            logger.exception('%s %s failed', request.method, request.path)
            return JsonResponse({'error': 'Something went wrong'}, status=500)
        if isinstance(response, HttpResponseNotAllowed):
            not_allowed = JsonResponse({'error': 'Method not allowed'}, status=405)
            not_allowed['Allow'] = response['Allow']
            return not_allowed
        return response
    return wrapped
