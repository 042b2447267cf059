"""
Customer ledger: per-phone running totals (order_count, total_spent, last_order_at).

Totals are maintained incrementally by order create/edit/delete, never by
recounting. Reconciliation is best-effort: the order has already been saved
when it runs, so a failure is logged and dropped.
"""
import logging
import re
import threading
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, close_old_connections, connection, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from .models import Customer, Order

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D+')


def normalize_phone(raw):
    """Keep digits only: ' 98765-43210 ' -> '9876543210'."""
    if raw is None:
        return ''
    return _NON_DIGITS.sub('', str(raw))


def is_ledger_phone(phone):
    """True when phone is exactly TILLBOOK_PHONE_DIGITS digits (the shop's own convention)."""
    digits = getattr(settings, 'TILLBOOK_PHONE_DIGITS', 10)
    return bool(phone) and len(phone) == digits and phone.isdigit()


def reconcile(phone, name, order_amount):
    """
    Create-or-update the customer for phone and add one order of order_amount.
    Existing customer: order_count + 1, total_spent + amount, last_order_at = now,
    name replaced when it differs. New customer: starts at 1 / amount.
    Returns the Customer.
    """
    now = timezone.now()
    amount = Decimal(order_amount)
    name = (name or '').strip() or phone
    with transaction.atomic():
        customer = Customer.objects.select_for_update().filter(phone=phone).first()
        if customer is None:
            try:
                with transaction.atomic():
                    return Customer.objects.create(
                        phone=phone,
                        name=name,
                        order_count=1,
                        total_spent=amount,
                        last_order_at=now,
                    )
            except IntegrityError:
                # Another request created this phone first; fall through to update it.
                customer = Customer.objects.select_for_update().get(phone=phone)
        updates = {
            'order_count': F('order_count') + 1,
            'total_spent': F('total_spent') + amount,
            'last_order_at': now,
            'updated_at': now,
        }
        if customer.name != name:
            updates['name'] = name
        Customer.objects.filter(pk=customer.pk).update(**updates)
        customer.refresh_from_db()
    return customer


def reverse(customer_id, order_amount):
    """
    Take one order of order_amount back out of the customer's totals.
    A customer already at order_count 0 is left unchanged (total_spent included)
    and a warning is logged; run audit_customer_ledger --fix to repair that drift.
    Returns the number of rows updated.
    """
    amount = Decimal(order_amount)
    with transaction.atomic():
        updated = Customer.objects.filter(pk=customer_id, order_count__gt=0).update(
            order_count=F('order_count') - 1,
            total_spent=F('total_spent') - amount,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.warning(
                'Ledger reverse skipped for customer %s: no orders on record '
                '(audit_customer_ledger --fix repairs totals)', customer_id,
            )
    return updated


def relink_order(order, previous_customer_id, previous_amount, previous_phone):
    """
    Bring the ledger in line with an edited order. Call inside the edit transaction
    after the order row is saved. Returns the customer id the order should point at.
    """
    new_phone = normalize_phone(order.customer_phone)
    phone_changed = new_phone != normalize_phone(previous_phone)
    amount_changed = order.amount != previous_amount
    eligible = is_ledger_phone(new_phone)

    if previous_customer_id:
        if not (phone_changed or amount_changed):
            return previous_customer_id
        reverse(previous_customer_id, previous_amount)
        if not eligible:
            return None
        return reconcile(new_phone, order.customer_name, order.amount).pk

    if eligible:
        return reconcile(new_phone, order.customer_name, order.amount).pk
    return None


def reconcile_order(order_id):
    """
    Post-commit task for a new order: link it to its customer and add it to the totals.
    Skips deleted, already linked and ledger-ineligible orders. Never raises.
    """
    try:
        with transaction.atomic():
            order = Order.all_objects.select_for_update().filter(pk=order_id).first()
            if order is None or order.is_deleted or order.customer_id:
                return None
            phone = normalize_phone(order.customer_phone)
            if not is_ledger_phone(phone):
                return None
            customer = reconcile(phone, order.customer_name, order.amount)
            Order.all_objects.filter(pk=order.pk).update(customer=customer)
        logger.info('Order #%s linked to customer #%s', order_id, customer.pk)
        return customer
    except Exception:
        logger.exception('Customer ledger update failed for order #%s', order_id)
        return None


def _run_in_worker(order_id):
    close_old_connections()
    try:
        reconcile_order(order_id)
    finally:
        connection.close()


def dispatch_reconcile(order_id):
    """Schedule reconcile_order for after the current transaction commits."""
    def _task():
        if getattr(settings, 'TILLBOOK_LEDGER_ASYNC', True):
            worker = threading.Thread(
                target=_run_in_worker,
                args=(order_id,),
                name=f'ledger-order-{order_id}',
                daemon=True,
            )
            worker.start()
        else:
            reconcile_order(order_id)

    transaction.on_commit(_task)


def audit(fix=False, customer_ids=None):
    """
    Compare each customer's stored totals with the non-deleted orders linked to it
    (all customers, or only customer_ids).
    Returns a list of drift rows; with fix=True the stored totals are overwritten.
    """
    drift = []
    customers = Customer.objects.annotate(
        expected_count=Count('orders', filter=Q(orders__deleted_at__isnull=True)),
        expected_spent=Sum('orders__amount', filter=Q(orders__deleted_at__isnull=True)),
    ).order_by('id')
    if customer_ids is not None:
        customers = customers.filter(pk__in=customer_ids)
    for c in customers:
        expected_spent = c.expected_spent or Decimal('0')
        if c.order_count == c.expected_count and c.total_spent == expected_spent:
            continue
        drift.append({
            'customer_id': c.id,
            'phone': c.phone,
            'order_count': c.order_count,
            'expected_count': c.expected_count,
            'total_spent': c.total_spent,
            'expected_spent': expected_spent,
        })
        if fix:
            Customer.objects.filter(pk=c.pk).update(
                order_count=c.expected_count,
                total_spent=expected_spent,
                updated_at=timezone.now(),
            )
    return drift
