from django.contrib import admin
from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'organization', 'status', 'final_amount', 'order_date', 'created_by', 'created_at']
    list_filter = ['status', 'organization', 'order_date']
    search_fields = ['order_number']
    ordering = ['-order_date']
    readonly_fields = ['created_at', 'updated_at']
