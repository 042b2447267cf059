"""Customer list, detail (with order history), manual create, update."""
from django.db.models import Count, F, Prefetch, Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core import services
from core.constants import CUSTOMER_LIST_MAX_LIMIT
from core.models import Customer, Order
from core.utils import json_api, parse_json_body, parse_limit
from core.views.order_views import order_to_dict


def _customer_to_dict(c, extra=None):
    d = {
        'id': c.id,
        'name': c.name,
        'phone': c.phone,
        'order_count': c.order_count,
        'total_spent': str(c.total_spent),
        'last_order_at': c.last_order_at.isoformat() if c.last_order_at else None,
        'created_at': c.created_at.isoformat() if c.created_at else None,
        'updated_at': c.updated_at.isoformat() if c.updated_at else None,
    }
    if extra:
        d.update(extra)
    return d


@require_http_methods(['GET'])
def customer_list(request):
    """Most recent buyers first. ?search= matches name or phone; ?limit= up to 50."""
    qs = Customer.objects.annotate(
        linked_orders=Count('orders', filter=Q(orders__deleted_at__isnull=True)),
    )
    search = (request.GET.get('search') or '').strip()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(phone__icontains=search))
    limit = parse_limit(request.GET.get('limit'), CUSTOMER_LIST_MAX_LIMIT, CUSTOMER_LIST_MAX_LIMIT)
    qs = qs.order_by(F('last_order_at').desc(nulls_last=True), '-created_at')[:limit]
    results = [_customer_to_dict(c, {'linked_orders': c.linked_orders}) for c in qs]
    return JsonResponse(results, safe=False)


@require_http_methods(['POST'])
def customer_create(request):
    body = parse_json_body(request)
    name = body.get('name') if isinstance(body.get('name'), str) else ''
    customer = services.create_customer(name, str(body.get('phone') or ''))
    return JsonResponse(_customer_to_dict(customer), status=201)


@require_http_methods(['GET'])
def customer_detail(request, pk):
    """Customer with non-deleted orders (items and toppings), newest first."""
    orders = Order.objects.prefetch_related('items__product', 'items__modifiers').order_by('-created_at')
    c = get_object_or_404(
        Customer.objects.prefetch_related(Prefetch('orders', queryset=orders)),
        pk=pk,
    )
    return JsonResponse(_customer_to_dict(c, {
        'orders': [order_to_dict(o) for o in c.orders.all()],
    }))


@require_http_methods(['PATCH'])
def customer_update(request, pk):
    """Update name and/or phone; linked orders get the new values."""
    body = parse_json_body(request)
    changes = {k: body[k] for k in ('name', 'phone') if k in body}
    if 'phone' in changes:
        changes['phone'] = str(changes['phone'] or '')
    if 'name' in changes and not isinstance(changes['name'], str):
        changes['name'] = ''
    customer = services.update_customer(pk, changes)
    return JsonResponse(_customer_to_dict(customer))


@csrf_exempt
@json_api
@require_http_methods(['GET', 'POST'])
def customer_list_or_create(request):
    if request.method == 'GET':
        return customer_list(request)
    return customer_create(request)


@csrf_exempt
@json_api
@require_http_methods(['GET', 'PATCH'])
def customer_detail_or_update(request, pk):
    if request.method == 'GET':
        return customer_detail(request, pk)
    return customer_update(request, pk)
