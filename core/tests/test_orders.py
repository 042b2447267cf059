import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.utils import timezone

from core import ledger
from core.constants import MAX_ITEM_QUANTITY
from core.models import Customer, Modifier, Order, OrderItem, OrderItemModifier, Product


@override_settings(TILLBOOK_LEDGER_ASYNC=False)
class OrderApiTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.latte = Product.objects.create(name='Latte', price=Decimal('100.00'), cost=Decimal('40.00'), has_modifiers=True)
        cls.muffin = Product.objects.create(name='Muffin', price=Decimal('50.00'), cost=Decimal('20.00'))
        cls.nuts = Modifier.objects.create(name='Nuts', price=Decimal('20.00'), cost=Decimal('5.00'))

    def _post(self, payload):
        return self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')

    def _patch(self, pk, payload):
        return self.client.patch(f'/api/orders/{pk}/', data=json.dumps(payload), content_type='application/json')

    def _create(self, payload):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self._post(payload)
        self.assertEqual(resp.status_code, 201, resp.content)
        return resp.json()

    def test_create_prices_items_and_snapshots_toppings(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': '9876543210',
            'items': [{'product_id': self.latte.id, 'quantity': 2, 'modifier_ids': [self.nuts.id]}],
            'discount_percent': 10,
            'discount_note': 'Regular',
        })
        self.assertEqual(data['subtotal'], '240.00')
        self.assertEqual(data['discount_amount'], '24.00')
        self.assertEqual(data['amount'], '216.00')
        self.assertEqual(data['discount_note'], 'Regular')
        item = data['items'][0]
        self.assertEqual(item['unit_price'], '120.00')
        self.assertEqual(item['line_total'], '240.00')
        self.assertEqual(item['modifiers'][0]['name'], 'Nuts')
        self.assertEqual(OrderItemModifier.objects.get().price_at_time, Decimal('20.00'))

    def test_create_links_order_to_customer_after_commit(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': ' 98765-43210 ',
            'items': [{'product_id': self.muffin.id}],
        })
        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual(Order.objects.get(pk=data['id']).customer_id, customer.id)
        self.assertEqual(customer.order_count, 1)
        self.assertEqual(customer.total_spent, Decimal('50.00'))

    def test_walk_in_order_has_no_customer(self):
        self._create({'customer_name': 'Walk-in', 'items': [{'product_id': self.muffin.id}]})
        self._create({'customer_name': 'Tourist', 'customer_phone': '12345', 'items': [{'product_id': self.muffin.id}]})
        self.assertFalse(Customer.objects.exists())
        self.assertFalse(Order.objects.filter(customer__isnull=False).exists())

    def test_discount_clamped_and_note_cleared(self):
        data = self._create({
            'customer_name': 'Ravi',
            'items': [{'product_id': self.muffin.id}],
            'discount_percent': 140,
        })
        self.assertEqual(data['discount_percent'], '100.00')
        self.assertEqual(data['amount'], '0.00')

        data = self._create({
            'customer_name': 'Ravi',
            'items': [{'product_id': self.muffin.id}],
            'discount_percent': 0,
            'discount_note': 'ignored',
        })
        self.assertIsNone(data['discount_note'])

    def test_create_validation_errors(self):
        cases = [
            {'items': [{'product_id': self.muffin.id}]},
            {'customer_name': 'Asha', 'items': []},
            {'customer_name': 'Asha', 'items': [{'product_id': 9999}]},
        ]
        for payload in cases:
            resp = self._post(payload)
            self.assertEqual(resp.status_code, 400, payload)
            self.assertIn('error', resp.json())
        self.assertFalse(Order.all_objects.exists())

    def test_invalid_json_is_400(self):
        resp = self.client.post('/api/orders/', data='{not json', content_type='application/json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {'error': 'Invalid JSON'})

    def test_inactive_product_cannot_be_ordered(self):
        self.muffin.is_active = False
        self.muffin.save()
        resp = self._post({'customer_name': 'Asha', 'items': [{'product_id': self.muffin.id}]})
        self.assertEqual(resp.status_code, 400)

    def test_price_change_does_not_touch_past_orders(self):
        data = self._create({
            'customer_name': 'Asha',
            'items': [{'product_id': self.latte.id, 'modifier_ids': [self.nuts.id]}],
        })
        self.client.patch(
            f'/api/products/{self.latte.id}/',
            data=json.dumps({'price': '200'}),
            content_type='application/json',
        )
        self.client.patch(
            f'/api/modifiers/{self.nuts.id}/',
            data=json.dumps({'price': '35'}),
            content_type='application/json',
        )
        detail = self.client.get(f'/api/orders/{data["id"]}/').json()
        self.assertEqual(detail['items'][0]['unit_price'], '120.00')
        self.assertEqual(detail['items'][0]['modifiers'][0]['price'], '20.00')
        self.assertEqual(detail['amount'], '120.00')

    def test_edit_appends_items_and_moves_ledger_amount(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': '9876543210',
            'items': [{'product_id': self.latte.id}],
        })
        resp = self._patch(data['id'], {'new_items': [{'product_id': self.muffin.id, 'quantity': 2}], 'discount_percent': 50})
        self.assertEqual(resp.status_code, 200, resp.content)
        body = resp.json()
        self.assertEqual(len(body['items']), 2)
        self.assertEqual(body['subtotal'], '200.00')
        self.assertEqual(body['amount'], '100.00')

        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual(customer.order_count, 1)
        self.assertEqual(customer.total_spent, Decimal('100.00'))

    def test_edit_phone_moves_order_to_new_customer(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': '9876543210',
            'items': [{'product_id': self.latte.id}],
        })
        self._patch(data['id'], {'customer_phone': '9123456780'})
        old = Customer.objects.get(phone='9876543210')
        new = Customer.objects.get(phone='9123456780')
        self.assertEqual((old.order_count, old.total_spent), (0, Decimal('0.00')))
        self.assertEqual((new.order_count, new.total_spent), (1, Decimal('100.00')))
        self.assertEqual(Order.objects.get(pk=data['id']).customer_id, new.id)

    def test_edit_rejects_blank_name(self):
        data = self._create({'customer_name': 'Asha', 'items': [{'product_id': self.latte.id}]})
        resp = self._patch(data['id'], {'customer_name': '  '})
        self.assertEqual(resp.status_code, 400)

    def test_soft_delete_hides_order_and_keeps_rows(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': '9876543210',
            'items': [{'product_id': self.latte.id, 'modifier_ids': [self.nuts.id]}],
        })
        resp = self.client.delete(f'/api/orders/{data["id"]}/')
        self.assertEqual(resp.json(), {'success': True})

        self.assertEqual(self.client.get('/api/orders/').json(), [])
        self.assertEqual(self.client.get(f'/api/orders/{data["id"]}/').status_code, 404)
        stats = self.client.get('/api/stats/?period=today').json()
        self.assertEqual(stats['summary']['total_orders'], 0)

        order = Order.all_objects.get(pk=data['id'])
        self.assertIsNotNone(order.deleted_at)
        self.assertEqual(OrderItem.objects.filter(order=order).count(), 1)

        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual(customer.order_count, 0)
        self.assertEqual(customer.total_spent, Decimal('0.00'))

    @override_settings(TILLBOOK_LEDGER_REVERSE_ON_DELETE=False)
    def test_delete_can_leave_ledger_untouched(self):
        data = self._create({
            'customer_name': 'Asha',
            'customer_phone': '9876543210',
            'items': [{'product_id': self.latte.id}],
        })
        self.client.delete(f'/api/orders/{data["id"]}/')
        self.assertEqual(Customer.objects.get(phone='9876543210').order_count, 1)

    def test_deleted_order_cannot_be_edited_or_deleted_again(self):
        data = self._create({'customer_name': 'Asha', 'items': [{'product_id': self.latte.id}]})
        self.client.delete(f'/api/orders/{data["id"]}/')
        self.assertEqual(self._patch(data['id'], {'discount_percent': 5}).status_code, 409)
        self.assertEqual(self.client.delete(f'/api/orders/{data["id"]}/').status_code, 409)

    def test_missing_order_is_404(self):
        self.assertEqual(self.client.get('/api/orders/9999/').status_code, 404)
        self.assertEqual(self._patch(9999, {'discount_percent': 5}).status_code, 404)

    def test_list_filters(self):
        first = self._create({'customer_name': 'Asha', 'items': [{'product_id': self.latte.id}], 'discount_percent': 5})
        self._create({'customer_name': 'Bilal', 'customer_phone': '9000000001', 'items': [{'product_id': self.muffin.id}]})
        Order.objects.filter(pk=first['id']).update(created_at=timezone.now() - timedelta(minutes=5))

        def names(query):
            return [o['customer_name'] for o in self.client.get(f'/api/orders/{query}').json()]

        self.assertEqual(names(''), ['Bilal', 'Asha'])
        self.assertEqual(names('?search=bil'), ['Bilal'])
        self.assertEqual(names('?search=90000'), ['Bilal'])
        self.assertEqual(names(f'?product_ids={self.latte.id}'), ['Asha'])
        self.assertEqual(names('?has_discount=true'), ['Asha'])
        self.assertEqual(names('?has_discount=false'), ['Bilal'])
        self.assertEqual(names('?limit=1'), ['Bilal'])

    def test_bill_pdf(self):
        data = self._create({
            'customer_name': 'Asha',
            'items': [{'product_id': self.latte.id, 'modifier_ids': [self.nuts.id]}],
            'discount_percent': '12.5',
            'discount_note': 'Festival',
        })
        resp = self.client.get(f'/api/orders/{data["id"]}/bill/?format=pdf')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp['Content-Type'], 'application/pdf')
        self.assertTrue(resp.content.startswith(b'%PDF'))

        self.assertEqual(self.client.get(f'/api/orders/{data["id"]}/bill/').status_code, 400)
        self.assertEqual(self.client.get('/api/orders/9999/bill/?format=pdf').status_code, 404)

    def test_method_not_allowed(self):
        resp = self.client.put('/api/orders/', data='{}', content_type='application/json')
        self.assertEqual(resp.status_code, 405)

    def test_oversized_quantity_is_400(self):
        for quantity in (10 ** 30, MAX_ITEM_QUANTITY + 1):
            resp = self._post({'customer_name': 'Asha', 'items': [{'product_id': self.muffin.id, 'quantity': quantity}]})
            self.assertEqual(resp.status_code, 400, quantity)
            self.assertEqual(resp.json()['error'], f'quantity cannot exceed {MAX_ITEM_QUANTITY}')
        self.assertFalse(Order.all_objects.exists())

    def test_wrong_method_is_json_405(self):
        resp = self.client.put('/api/orders/1/', data='{}', content_type='application/json')
        self.assertEqual(resp.status_code, 405)
        self.assertEqual(resp.json(), {'error': 'Method not allowed'})


@override_settings(TILLBOOK_LEDGER_ASYNC=False)
class OrderLedgerTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.latte = Product.objects.create(name='Latte', price=Decimal('100.00'), cost=Decimal('40.00'))

    def _create(self, phone=''):
        payload = {'customer_name': 'Asha', 'customer_phone': phone, 'items': [{'product_id': self.latte.id}]}
        with self.captureOnCommitCallbacks(execute=True):
            resp = self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')
        self.assertEqual(resp.status_code, 201, resp.content)
        return resp.json()['id']

    def _patch(self, pk, payload):
        return self.client.patch(f'/api/orders/{pk}/', data=json.dumps(payload), content_type='application/json')

    def test_walk_in_order_edited_to_ledger_phone_is_linked(self):
        pk = self._create()
        self.assertEqual(self._patch(pk, {'customer_phone': '9876543210'}).status_code, 200)

        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual((customer.order_count, customer.total_spent), (1, Decimal('100.00')))
        self.assertEqual(Order.objects.get(pk=pk).customer_id, customer.id)

    def test_linked_order_edited_to_short_phone_is_unlinked(self):
        pk = self._create('9876543210')
        self.assertEqual(self._patch(pk, {'customer_phone': '12345'}).status_code, 200)

        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual((customer.order_count, customer.total_spent), (0, Decimal('0.00')))
        self.assertIsNone(Order.objects.get(pk=pk).customer_id)

    def test_name_only_edit_leaves_totals_alone(self):
        pk = self._create('9876543210')
        before = Customer.objects.get(phone='9876543210')

        resp = self._patch(pk, {'customer_name': 'Asha Rao'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()['customer_name'], 'Asha Rao')

        after = Customer.objects.get(phone='9876543210')
        self.assertEqual(after.order_count, 1)
        self.assertEqual(after.total_spent, Decimal('100.00'))
        self.assertEqual(after.last_order_at, before.last_order_at)
        self.assertEqual(Order.objects.get(pk=pk).customer_id, before.id)

    def test_ledger_failure_during_edit_keeps_the_edit(self):
        pk = self._create('9876543210')
        with patch('core.ledger.reconcile', side_effect=RuntimeError('ledger down')):
            with self.assertLogs('core.services', level='ERROR') as logs:
                resp = self._patch(pk, {'discount_percent': 10})
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()['discount_percent'], '10.00')
        self.assertEqual(resp.json()['amount'], '90.00')
        self.assertIn(f'editing order #{pk}', logs.output[0])

        order = Order.objects.get(pk=pk)
        self.assertEqual(order.amount, Decimal('90.00'))
        # the reversal ran in the same savepoint and was rolled back with it
        customer = Customer.objects.get(phone='9876543210')
        self.assertEqual((customer.order_count, customer.total_spent), (1, Decimal('100.00')))

    def test_ledger_failure_during_delete_keeps_the_delete(self):
        pk = self._create('9876543210')
        with patch('core.ledger.reverse', side_effect=RuntimeError('ledger down')):
            with self.assertLogs('core.services', level='ERROR'):
                resp = self.client.delete(f'/api/orders/{pk}/')
        self.assertEqual(resp.json(), {'success': True})
        self.assertIsNotNone(Order.all_objects.get(pk=pk).deleted_at)

    def test_failed_reconcile_after_create_is_logged_and_order_kept(self):
        payload = {'customer_name': 'Asha', 'customer_phone': '9876543210', 'items': [{'product_id': self.latte.id}]}
        with patch('core.ledger.reconcile', side_effect=RuntimeError('ledger down')):
            with self.assertLogs('core.ledger', level='ERROR') as logs:
                with self.captureOnCommitCallbacks(execute=True):
                    resp = self.client.post('/api/orders/', data=json.dumps(payload), content_type='application/json')
        self.assertEqual(resp.status_code, 201)
        self.assertIn('Customer ledger update failed', logs.output[0])
        self.assertEqual(Order.objects.count(), 1)
        self.assertIsNone(Order.objects.get().customer_id)
        self.assertFalse(Customer.objects.exists())

    @override_settings(TILLBOOK_LEDGER_ASYNC=True)
    def test_dispatch_starts_worker_thread_after_commit(self):
        with patch('core.ledger.threading.Thread') as thread_cls:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                ledger.dispatch_reconcile(42)
                thread_cls.assert_not_called()
        self.assertEqual(len(callbacks), 1)
        thread_cls.assert_called_once_with(
            target=ledger._run_in_worker,
            args=(42,),
            name='ledger-order-42',
            daemon=True,
        )
        thread_cls.return_value.start.assert_called_once_with()
