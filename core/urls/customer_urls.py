"""Customer API URL configuration. Customers are also created implicitly by orders with a 10-digit phone."""
from django.urls import path
from core.views.customer_views import customer_list_or_create, customer_detail_or_update

urlpatterns = [
    path('', customer_list_or_create),
    path('<int:pk>/', customer_detail_or_update),
]
