"""Topping (modifier) list, create, update, soft delete."""
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core.exceptions import ValidationError
from core.models import Modifier, ModifierType
from core.utils import json_api, parse_bool, parse_json_body, parse_money


def _modifier_to_dict(m):
    return {
        'id': m.id,
        'name': m.name,
        'price': str(m.price),
        'cost': str(m.cost),
        'type': m.type,
        'is_active': m.is_active,
        'created_at': m.created_at.isoformat() if m.created_at else None,
    }


def _modifier_type(value):
    t = (value or ModifierType.TOPPING)
    if t not in ModifierType.values:
        raise ValidationError('Invalid modifier type')
    return t


@require_http_methods(['GET'])
def modifier_list(request):
    qs = Modifier.objects.all()
    if parse_bool(request.GET.get('all')) is not True:
        qs = qs.filter(is_active=True)
    return JsonResponse([_modifier_to_dict(m) for m in qs.order_by('created_at')], safe=False)


@require_http_methods(['POST'])
def modifier_create(request):
    """JSON: name, price, cost, type? (default topping)."""
    body = parse_json_body(request)
    name = body.get('name')
    name = name.strip() if isinstance(name, str) else ''
    if not name or body.get('price') is None or body.get('cost') is None:
        raise ValidationError('name, price and cost are required')
    m = Modifier.objects.create(
        name=name,
        price=parse_money(body['price'], 'price'),
        cost=parse_money(body['cost'], 'cost'),
        type=_modifier_type(body.get('type')),
    )
    return JsonResponse(_modifier_to_dict(m), status=201)


@require_http_methods(['GET'])
def modifier_detail(request, pk):
    return JsonResponse(_modifier_to_dict(get_object_or_404(Modifier, pk=pk)))


@require_http_methods(['PATCH'])
def modifier_update(request, pk):
    m = get_object_or_404(Modifier, pk=pk)
    body = parse_json_body(request)
    fields = []
    if isinstance(body.get('name'), str) and body['name'].strip():
        m.name = body['name'].strip()
        fields.append('name')
    for field in ('price', 'cost'):
        if body.get(field) is not None:
            setattr(m, field, parse_money(body[field], field))
            fields.append(field)
    if body.get('type'):
        m.type = _modifier_type(body['type'])
        fields.append('type')
    if isinstance(body.get('is_active'), bool):
        m.is_active = body['is_active']
        fields.append('is_active')
    if not fields:
        raise ValidationError('No valid fields to update')
    m.save(update_fields=fields + ['updated_at'])
    return JsonResponse(_modifier_to_dict(m))


@require_http_methods(['DELETE'])
def modifier_delete(request, pk):
    m = get_object_or_404(Modifier, pk=pk)
    m.is_active = False
    m.save(update_fields=['is_active', 'updated_at'])
    return JsonResponse({'success': True})


@csrf_exempt
@json_api
@require_http_methods(['GET', 'POST'])
def modifier_list_or_create(request):
    if request.method == 'GET':
        return modifier_list(request)
    return modifier_create(request)


@csrf_exempt
@json_api
@require_http_methods(['GET', 'PATCH', 'DELETE'])
def modifier_detail_or_update(request, pk):
    if request.method == 'GET':
        return modifier_detail(request, pk)
    if request.method == 'PATCH':
        return modifier_update(request, pk)
    return modifier_delete(request, pk)
