"""Order API URL configuration."""
from django.urls import path
from core.views.order_views import order_list_or_create, order_detail_or_update, order_bill

urlpatterns = [
    path('', order_list_or_create),
    path('<int:pk>/', order_detail_or_update),
    path('<int:pk>/bill/', order_bill),
]
