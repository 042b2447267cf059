"""Product (menu item) list, detail, create, update, soft delete. Function-based."""
import logging

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core.exceptions import ValidationError
from core.models import Product
from core.utils import json_api, parse_bool, parse_json_body, parse_money

logger = logging.getLogger(__name__)


def _product_to_dict(p):
    return {
        'id': p.id,
        'name': p.name,
        'price': str(p.price),
        'cost': str(p.cost),
        'is_active': p.is_active,
        'has_modifiers': p.has_modifiers,
        'created_at': p.created_at.isoformat() if p.created_at else None,
        'updated_at': p.updated_at.isoformat() if p.updated_at else None,
    }


@require_http_methods(['GET'])
def product_list(request):
    """Active products, newest first. ?all=true includes deactivated ones."""
    qs = Product.objects.all()
    if parse_bool(request.GET.get('all')) is not True:
        qs = qs.filter(is_active=True)
    results = [_product_to_dict(p) for p in qs.order_by('-created_at')]
    return JsonResponse(results, safe=False)


@require_http_methods(['POST'])
def product_create(request):
    """Create product. JSON: name, price, cost, has_modifiers?"""
    body = parse_json_body(request)
    name = (body.get('name') or '').strip() if isinstance(body.get('name'), str) else ''
    if not name or body.get('price') is None or body.get('cost') is None:
        raise ValidationError('name, price, and cost are required')
    p = Product(
        name=name,
        price=parse_money(body['price'], 'price'),
        cost=parse_money(body['cost'], 'cost'),
        has_modifiers=parse_bool(body.get('has_modifiers')) is True,
    )
    p.save()
    logger.info('Product #%s created: %s at %s', p.id, p.name, p.price)
    return JsonResponse(_product_to_dict(p), status=201)


@require_http_methods(['GET'])
def product_detail(request, pk):
    p = get_object_or_404(Product, pk=pk)
    return JsonResponse(_product_to_dict(p))


@require_http_methods(['PATCH'])
def product_update(request, pk):
    """
    Update name, price, cost, has_modifiers, is_active. Only provided, valid fields change.
    Price/cost changes affect future orders only; past order lines keep their snapshot.
    """
    p = get_object_or_404(Product, pk=pk)
    body = parse_json_body(request)
    fields = []
    name = body.get('name')
    if isinstance(name, str) and name.strip():
        p.name = name.strip()
        fields.append('name')
    if body.get('price') is not None:
        p.price = parse_money(body['price'], 'price')
        fields.append('price')
    if body.get('cost') is not None:
        p.cost = parse_money(body['cost'], 'cost')
        fields.append('cost')
    for flag in ('has_modifiers', 'is_active'):
        if isinstance(body.get(flag), bool):
            setattr(p, flag, body[flag])
            fields.append(flag)
    if not fields:
        raise ValidationError('No valid fields to update')
    p.save(update_fields=fields + ['updated_at'])
    return JsonResponse(_product_to_dict(p))


@require_http_methods(['DELETE'])
def product_delete(request, pk):
    """Deactivate product. Rows stay so historical order lines keep their reference."""
    p = get_object_or_404(Product, pk=pk)
    if p.is_active:
        p.is_active = False
        p.save(update_fields=['is_active', 'updated_at'])
        logger.info('Product #%s deactivated', p.id)
    return JsonResponse({'success': True})


@csrf_exempt
@json_api
@require_http_methods(['GET', 'POST'])
def product_list_or_create(request):
    """GET -> list, POST -> create."""
    if request.method == 'GET':
        return product_list(request)
    return product_create(request)


@csrf_exempt
@json_api
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def product_detail_or_update(request, pk):
    """GET -> detail, PATCH -> update, DELETE -> deactivate."""
    if request.method == 'GET':
        return product_detail(request, pk)
    if request.method == 'PATCH':
        return product_update(request, pk)
    return product_delete(request, pk)
