"""
Order lifecycle and customer maintenance. Used by views (and the admin) so
pricing, soft delete and ledger updates stay consistent.
"""
import logging
from datetime import datetime, time

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from . import ledger
from .constants import ORDER_LIST_DEFAULT_LIMIT, ORDER_LIST_MAX_LIMIT
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import Customer, Order, OrderItem, OrderItemModifier
from .pricing import Catalog, build_quotes, compute_order_totals, normalize_item_requests
from .utils import money

logger = logging.getLogger(__name__)


def _save_line_items(order, quotes):
    """Persist quoted lines and their topping snapshots under order."""
    for q in quotes:
        item = OrderItem.objects.create(
            order=order,
            product=q.product,
            quantity=q.quantity,
            unit_price=q.unit_price,
            line_total=q.line_total,
        )
        if q.modifiers:
            OrderItemModifier.objects.bulk_create([
                OrderItemModifier(
                    order_item=item,
                    modifier_id=snap.modifier_id,
                    name_at_time=snap.name,
                    price_at_time=snap.price,
                    cost_at_time=snap.cost,
                )
                for snap in q.modifiers
            ])


def _apply_totals(order, totals):
    order.subtotal = totals.subtotal
    order.discount_percent = totals.discount_percent
    order.discount_amount = totals.discount_amount
    order.amount = totals.amount
    order.discount_note = totals.discount_note


def order_queryset():
    """Non-deleted orders with everything the serializers touch."""
    return Order.objects.select_related('customer').prefetch_related(
        'items__product', 'items__modifiers'
    )


def get_order(pk):
    order = order_queryset().filter(pk=pk).first()
    if order is None:
        raise NotFoundError('Order not found')
    return order


def create_order(customer_name, customer_phone, items, discount_percent=None, discount_note=None):
    """
    Price items against the current catalog and save Order + items + topping snapshots
    in one transaction. Ledger reconciliation for a 10-digit phone runs after commit.
    """
    name = (customer_name or '').strip()
    if not name:
        raise ValidationError('customer_name is required')
    phone = (customer_phone or '').strip()
    requests = normalize_item_requests(items)

    with transaction.atomic():
        quotes = build_quotes(requests, Catalog.for_items(requests))
        totals = compute_order_totals([q.line_total for q in quotes], discount_percent, discount_note)
        order = Order(customer_name=name, customer_phone=phone)
        _apply_totals(order, totals)
        order.save()
        _save_line_items(order, quotes)
        if ledger.is_ledger_phone(ledger.normalize_phone(phone)):
            ledger.dispatch_reconcile(order.pk)

    logger.info('Order #%s created: %s items, amount %s', order.pk, len(quotes), order.amount)
    return get_order(order.pk)


def update_order(pk, changes):
    """
    Edit an active order. changes may hold customer_name, customer_phone,
    discount_percent, discount_note and new_items. Existing lines are never
    touched; new lines are appended and the totals recomputed.
    """
    with transaction.atomic():
        order = Order.all_objects.select_for_update().filter(pk=pk).first()
        if order is None:
            raise NotFoundError('Order not found')
        if order.is_deleted:
            raise ConflictError('Cannot edit a deleted order')

        previous_customer_id = order.customer_id
        previous_amount = order.amount
        previous_phone = order.customer_phone

        if 'customer_name' in changes:
            name = (changes.get('customer_name') or '').strip()
            if not name:
                raise ValidationError('customer_name cannot be empty')
            order.customer_name = name
        if 'customer_phone' in changes:
            order.customer_phone = (changes.get('customer_phone') or '').strip()

        quotes = []
        if changes.get('new_items'):
            requests = normalize_item_requests(changes['new_items'])
            quotes = build_quotes(requests, Catalog.for_items(requests))

        existing_totals = list(order.items.values_list('line_total', flat=True))
        pct = changes['discount_percent'] if 'discount_percent' in changes else order.discount_percent
        note = changes['discount_note'] if 'discount_note' in changes else order.discount_note
        totals = compute_order_totals(existing_totals + [q.line_total for q in quotes], pct, note)
        _apply_totals(order, totals)
        order.save()
        _save_line_items(order, quotes)

        try:
            with transaction.atomic():
                customer_id = ledger.relink_order(order, previous_customer_id, previous_amount, previous_phone)
        except Exception:
            logger.exception('Customer ledger update failed while editing order #%s', order.pk)
        else:
            if customer_id != order.customer_id:
                Order.all_objects.filter(pk=order.pk).update(customer_id=customer_id)

    logger.info('Order #%s updated: %s new items, amount %s', order.pk, len(quotes), order.amount)
    return get_order(order.pk)


def delete_order(pk):
    """Soft delete: stamp deleted_at, keep the rows. Optionally reverse the ledger contribution."""
    with transaction.atomic():
        order = Order.all_objects.select_for_update().filter(pk=pk).first()
        if order is None:
            raise NotFoundError('Order not found')
        if order.is_deleted:
            raise ConflictError('Order is already deleted')
        order.deleted_at = timezone.now()
        order.save(update_fields=['deleted_at', 'updated_at'])

        if order.customer_id and getattr(settings, 'TILLBOOK_LEDGER_REVERSE_ON_DELETE', True):
            try:
                with transaction.atomic():
                    ledger.reverse(order.customer_id, order.amount)
            except Exception:
                logger.exception('Customer ledger reversal failed for deleted order #%s', order.pk)

    logger.info('Order #%s deleted', order.pk)
    return order


def _day_start(d):
    return timezone.make_aware(datetime.combine(d, time.min))


def _day_end(d):
    return timezone.make_aware(datetime.combine(d, time.max))


def list_orders(search='', start=None, end=None, product_ids=None, has_discount=None, limit=None):
    """Non-deleted orders, newest first. start/end are local dates, both inclusive."""
    qs = order_queryset()
    search = (search or '').strip()
    if search:
        qs = qs.filter(Q(customer_name__icontains=search) | Q(customer_phone__icontains=search))
    if start:
        qs = qs.filter(created_at__gte=_day_start(start))
    if end:
        qs = qs.filter(created_at__lte=_day_end(end))
    if product_ids:
        matching = OrderItem.objects.filter(product_id__in=product_ids).values('order_id')
        qs = qs.filter(pk__in=matching)
    if has_discount is True:
        qs = qs.filter(discount_percent__gt=0)
    elif has_discount is False:
        qs = qs.filter(discount_percent=0)
    limit = min(limit or ORDER_LIST_DEFAULT_LIMIT, ORDER_LIST_MAX_LIMIT)
    return list(qs.order_by('-created_at')[:limit])


# --- Customers ---


def _validated_phone(raw):
    phone = ledger.normalize_phone(raw)
    if not ledger.is_ledger_phone(phone):
        digits = getattr(settings, 'TILLBOOK_PHONE_DIGITS', 10)
        raise ValidationError(f'Phone must be exactly {digits} digits')
    return phone


def create_customer(name, phone):
    """Manual customer entry. Starts with zero orders."""
    name = (name or '').strip()
    if not name or not phone:
        raise ValidationError('name and phone are required')
    phone = _validated_phone(phone)
    if Customer.objects.filter(phone=phone).exists():
        raise ConflictError('Customer with this phone number already exists')
    try:
        with transaction.atomic():
            customer = Customer.objects.create(name=name, phone=phone, total_spent=money(0))
    except IntegrityError:
        raise ConflictError('Customer with this phone number already exists')
    logger.info('Customer #%s created', customer.pk)
    return customer


def update_customer(pk, changes):
    """
    Edit name and/or phone. Linked orders get the new values in their
    denormalized customer_name/customer_phone fields.
    """
    with transaction.atomic():
        customer = Customer.objects.select_for_update().filter(pk=pk).first()
        if customer is None:
            raise NotFoundError('Customer not found')
        fields = []
        if 'name' in changes:
            name = (changes.get('name') or '').strip()
            if not name:
                raise ValidationError('name is required')
            customer.name = name
            fields.append('name')
        if 'phone' in changes:
            phone = _validated_phone(changes.get('phone'))
            if phone != customer.phone:
                if Customer.objects.filter(phone=phone).exclude(pk=customer.pk).exists():
                    raise ConflictError('Customer with this phone number already exists')
                customer.phone = phone
                fields.append('phone')
        if not fields:
            raise ValidationError('No valid fields to update')
        customer.save(update_fields=fields + ['updated_at'])

        cascade = {}
        if 'name' in fields:
            cascade['customer_name'] = customer.name
        if 'phone' in fields:
            cascade['customer_phone'] = customer.phone
        Order.all_objects.filter(customer=customer).update(**cascade)

    logger.info('Customer #%s updated (%s)', customer.pk, ', '.join(fields))
    return customer
