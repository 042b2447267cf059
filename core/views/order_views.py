"""Order list, detail, create, update (append items / discount / customer), soft delete, receipt."""
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core import services
from core.constants import ORDER_LIST_DEFAULT_LIMIT, ORDER_LIST_MAX_LIMIT
from core.exceptions import ValidationError
from core.utils import json_api, parse_bool, parse_date, parse_id_list, parse_json_body, parse_limit

EDITABLE_FIELDS = ('customer_name', 'customer_phone', 'discount_percent', 'discount_note', 'new_items')


def _item_to_dict(i):
    return {
        'id': i.id,
        'product_id': i.product_id,
        'product_name': i.product.name if i.product_id else None,
        'quantity': i.quantity,
        'unit_price': str(i.unit_price),
        'line_total': str(i.line_total),
        'created_at': i.created_at.isoformat() if i.created_at else None,
        'modifiers': [
            {
                'id': m.id,
                'modifier_id': m.modifier_id,
                'name': m.name_at_time,
                'price': str(m.price_at_time),
                'cost': str(m.cost_at_time),
            }
            for m in i.modifiers.all()
        ],
    }


def order_to_dict(o, include_items=True):
    d = {
        'id': o.id,
        'customer_id': o.customer_id,
        'customer_name': o.customer_name,
        'customer_phone': o.customer_phone,
        'subtotal': str(o.subtotal),
        'discount_percent': str(o.discount_percent),
        'discount_amount': str(o.discount_amount),
        'discount_note': o.discount_note,
        'amount': str(o.amount),
        'created_at': o.created_at.isoformat() if o.created_at else None,
        'updated_at': o.updated_at.isoformat() if o.updated_at else None,
        'deleted_at': o.deleted_at.isoformat() if o.deleted_at else None,
    }
    if include_items:
        d['items'] = [_item_to_dict(i) for i in o.items.all()]
    return d


@require_http_methods(['GET'])
def order_list(request):
    """GET /orders/?search=&start=&end=&product_ids=1,2&has_discount=true&limit="""
    orders = services.list_orders(
        search=request.GET.get('search') or '',
        start=parse_date(request.GET.get('start')),
        end=parse_date(request.GET.get('end')),
        product_ids=parse_id_list(request.GET.get('product_ids')),
        has_discount=parse_bool(request.GET.get('has_discount')),
        limit=parse_limit(request.GET.get('limit'), ORDER_LIST_DEFAULT_LIMIT, ORDER_LIST_MAX_LIMIT),
    )
    return JsonResponse([order_to_dict(o) for o in orders], safe=False)


@require_http_methods(['POST'])
def order_create(request):
    """
    Create order. Required: customer_name, items [{product_id, quantity?, modifier_ids?}].
    Optional: customer_phone (blank = walk-in), discount_percent, discount_note.
    """
    body = parse_json_body(request)
    order = services.create_order(
        customer_name=body.get('customer_name') if isinstance(body.get('customer_name'), str) else '',
        customer_phone=str(body.get('customer_phone') or ''),
        items=body.get('items'),
        discount_percent=body.get('discount_percent'),
        discount_note=body.get('discount_note'),
    )
    return JsonResponse(order_to_dict(order), status=201)


@require_http_methods(['GET'])
def order_detail(request, pk):
    return JsonResponse(order_to_dict(services.get_order(pk)))


@require_http_methods(['PATCH'])
def order_update(request, pk):
    """Edit customer/discount fields and append new_items. Existing lines cannot change."""
    body = parse_json_body(request)
    changes = {k: body[k] for k in EDITABLE_FIELDS if k in body}
    if 'customer_phone' in changes:
        changes['customer_phone'] = str(changes['customer_phone'] or '')
    if 'customer_name' in changes and not isinstance(changes['customer_name'], str):
        raise ValidationError('customer_name must be a string')
    order = services.update_order(pk, changes)
    return JsonResponse(order_to_dict(order))


@require_http_methods(['DELETE'])
def order_delete(request, pk):
    services.delete_order(pk)
    return JsonResponse({'success': True})


@json_api
@require_http_methods(['GET'])
def order_bill(request, pk):
    """GET /orders/<id>/bill/?format=pdf - receipt PDF."""
    if request.GET.get('format') != 'pdf':
        raise ValidationError('Use ?format=pdf to download bill')
    from core.bill_pdf import order_bill_pdf_bytes
    order = services.get_order(pk)
    resp = HttpResponse(order_bill_pdf_bytes(order), content_type='application/pdf')
    resp['Content-Disposition'] = f'attachment; filename="order-{order.id}-bill.pdf"'
    return resp


@csrf_exempt
@json_api
@require_http_methods(['GET', 'POST'])
def order_list_or_create(request):
    if request.method == 'GET':
        return order_list(request)
    return order_create(request)


@csrf_exempt
@json_api
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def order_detail_or_update(request, pk):
    if request.method == 'GET':
        return order_detail(request, pk)
    if request.method == 'PATCH':
        return order_update(request, pk)
    return order_delete(request, pk)
