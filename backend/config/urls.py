"""
URL configuration for backend project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Budget Forecasting Admin Panel"
admin.site.site_title = "Budget Forecasting Admin Portal"
admin.site.index_title = "Welcome to the Budget Forecasting Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.pos.urls')),
    path('api/v1/', include('backend.accounting.urls')),
]
