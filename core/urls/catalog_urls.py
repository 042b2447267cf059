"""Catalog API: products and toppings. DELETE deactivates, it never removes rows."""
from django.urls import path
from core.views.product_views import product_list_or_create, product_detail_or_update
from core.views.modifier_views import modifier_list_or_create, modifier_detail_or_update

urlpatterns = [
    path('products/', product_list_or_create),
    path('products/<int:pk>/', product_detail_or_update),
    path('modifiers/', modifier_list_or_create),
    path('modifiers/<int:pk>/', modifier_detail_or_update),
]
