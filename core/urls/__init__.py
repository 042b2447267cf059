# URL packages - include catalog_urls, order_urls, customer_urls, stats_urls.
from django.urls import path, include

urlpatterns = [
    path('', include('core.urls.catalog_urls')),
    path('orders/', include('core.urls.order_urls')),
    path('customers/', include('core.urls.customer_urls')),
    path('stats/', include('core.urls.stats_urls')),
]
