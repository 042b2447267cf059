"""Stats API URL configuration."""
from django.urls import path
from core.views.stats_views import stats_summary, stats_latest

urlpatterns = [
    path('', stats_summary),
    path('latest/', stats_latest),
]
