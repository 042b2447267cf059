from django.db import models
from django.utils import timezone
from decimal import Decimal


# --- Choice constants ---

class ModifierType(models.TextChoices):
    TOPPING = 'topping', 'Topping'


# --- Managers ---

class ActiveOrderManager(models.Manager):
    """Orders that have not been soft-deleted. Default manager for every read path."""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


# --- Models ---

class Product(models.Model):
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    is_active = models.BooleanField(default=True)
    has_modifiers = models.BooleanField(
        default=False, help_text='Show the toppings picker for this product'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_product'
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class Modifier(models.Model):
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    type = models.CharField(
        max_length=20, choices=ModifierType.choices, default=ModifierType.TOPPING
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_modifier'
        ordering = ['created_at']

    def __str__(self):
        return self.name


class Customer(models.Model):
    phone = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=255)
    order_count = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(
        max_digits=14, decimal_places=2, default=Decimal('0')
    )
    last_order_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'core_customer'
        ordering = [models.F('last_order_at').desc(nulls_last=True)]

    def __str__(self):
        return f'{self.name} ({self.phone})'


class Order(models.Model):
    customer = models.ForeignKey(
        Customer, on_delete=models.SET_NULL, related_name='orders',
        null=True, blank=True
    )
    customer_name = models.CharField(max_length=255)
    customer_phone = models.CharField(max_length=20, blank=True)
    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    discount_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0')
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0')
    )
    discount_note = models.TextField(null=True, blank=True)
    amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0'),
        help_text='Final total after discount'
    )
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)

    objects = ActiveOrderManager()
    all_objects = models.Manager()

    class Meta:
        db_table = 'core_order'
        ordering = ['-created_at']
        base_manager_name = 'all_objects'
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_percent__gte=0) & models.Q(discount_percent__lte=100),
                name='order_discount_percent_range',
            ),
        ]

    def __str__(self):
        return f'Order #{self.id} ({self.customer_name})'

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class OrderItem(models.Model):
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, related_name='items'
    )
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name='order_items'
    )
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(
        max_digits=12, decimal_places=2,
        help_text='Product price plus topping prices when the item was added'
    )
    line_total = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_order_item'
        ordering = ['order', 'id']

    def __str__(self):
        return f'OrderItem #{self.id} (Order #{self.order_id})'


class OrderItemModifier(models.Model):
    order_item = models.ForeignKey(
        OrderItem, on_delete=models.CASCADE, related_name='modifiers'
    )
    modifier = models.ForeignKey(
        Modifier, on_delete=models.PROTECT, related_name='order_item_modifiers'
    )
    name_at_time = models.CharField(max_length=255)
    price_at_time = models.DecimalField(max_digits=12, decimal_places=2)
    cost_at_time = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'core_order_item_modifier'
        ordering = ['order_item', 'id']

    def __str__(self):
        return f'{self.name_at_time} on OrderItem #{self.order_item_id}'
