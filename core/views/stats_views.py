"""Sales stats for a period, and the newest order timestamp (drives which period chips the till shows)."""
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from core import stats
from core.constants import DEFAULT_STATS_PERIOD
from core.utils import json_api, parse_date, serialize_value


@json_api
@require_http_methods(['GET'])
def stats_summary(request):
    """GET /stats/?period=today|yesterday|week|month|all|custom&start=YYYY-MM-DD&end=YYYY-MM-DD"""
    period, start, end = stats.resolve_period(
        (request.GET.get('period') or DEFAULT_STATS_PERIOD).strip().lower(),
        parse_date(request.GET.get('start')),
        parse_date(request.GET.get('end')),
    )
    payload = {
        'period': period,
        'date_range': {'start': start, 'end': end},
    }
    payload.update(stats.compute_stats(start, end))
    return JsonResponse(serialize_value(payload))


@json_api
@require_http_methods(['GET'])
def stats_latest(request):
    latest = stats.latest_order_at()
    return JsonResponse({'latest_order_date': latest.isoformat() if latest else None})
