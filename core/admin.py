from django.contrib import admin, messages

from . import ledger
from .models import (
    Customer,
    Modifier,
    Order,
    OrderItem,
    OrderItemModifier,
    Product,
)

SNAPSHOT_ITEM_FIELDS = ('product', 'quantity', 'unit_price', 'line_total', 'created_at')
SNAPSHOT_MODIFIER_FIELDS = ('modifier', 'name_at_time', 'price_at_time', 'cost_at_time', 'created_at')
ORDER_TOTAL_FIELDS = ('subtotal', 'discount_percent', 'discount_amount', 'amount')


# --- Inlines ---

class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    fields = SNAPSHOT_ITEM_FIELDS
    readonly_fields = SNAPSHOT_ITEM_FIELDS
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


class OrderItemModifierInline(admin.TabularInline):
    model = OrderItemModifier
    extra = 0
    can_delete = False
    fields = SNAPSHOT_MODIFIER_FIELDS
    readonly_fields = SNAPSHOT_MODIFIER_FIELDS

    def has_add_permission(self, request, obj=None):
        return False


# --- Catalog ---

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('name', 'price', 'cost', 'has_modifiers', 'is_active', 'created_at')
    list_filter = ('is_active', 'has_modifiers')
    search_fields = ('name',)
    readonly_fields = ('created_at', 'updated_at')

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Modifier)
class ModifierAdmin(admin.ModelAdmin):
    list_display = ('name', 'type', 'price', 'cost', 'is_active', 'created_at')
    list_filter = ('type', 'is_active')
    search_fields = ('name',)
    readonly_fields = ('created_at', 'updated_at')

    def has_delete_permission(self, request, obj=None):
        return False


# --- Customers and orders ---

@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('name', 'phone', 'order_count', 'total_spent', 'last_order_at')
    search_fields = ('name', 'phone')
    readonly_fields = ('order_count', 'total_spent', 'last_order_at', 'created_at', 'updated_at')
    actions = ['audit_ledger']

    @admin.action(description='Repair order totals from linked orders')
    def audit_ledger(self, request, queryset):
        drift = ledger.audit(fix=True, customer_ids=list(queryset.values_list('id', flat=True)))
        if drift:
            self.message_user(request, f'Repaired totals for {len(drift)} customer(s).', messages.WARNING)
        else:
            self.message_user(request, 'All customer totals match their orders.', messages.SUCCESS)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'customer_name', 'customer_phone', 'amount', 'discount_percent', 'created_at', 'deleted_at')
    list_filter = ('created_at', 'deleted_at')
    search_fields = ('customer_name', 'customer_phone')
    readonly_fields = ORDER_TOTAL_FIELDS + ('customer', 'created_at', 'updated_at', 'deleted_at')
    inlines = [OrderItemInline]

    def get_queryset(self, request):
        return Order.all_objects.select_related('customer')

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ('id', 'order', 'product', 'quantity', 'unit_price', 'line_total')
    readonly_fields = ('order',) + SNAPSHOT_ITEM_FIELDS
    inlines = [OrderItemModifierInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
