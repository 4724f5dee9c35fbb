"""
URL configuration for the lead queue API.

One action-dispatched endpoint plus session login.
"""

from django.urls import path
from . import views

urlpatterns = [
    path('auth/login/', views.worker_login, name='worker-login'),
    path('leads/', views.leads_api, name='leads-api'),
]
