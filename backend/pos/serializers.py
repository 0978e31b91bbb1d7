from rest_framework import serializers
from .models import Order


class OrderSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True)
    order_number = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = Order
        fields = [
            'id', 'organization', 'order_number', 'order_date', 'status',
            'subtotal', 'discount_amount', 'tax_amount', 'final_amount', 'notes',
            'created_by', 'created_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_by', 'created_at', 'updated_at']

    def validate_final_amount(self, value):
        if value < 0:
            raise serializers.ValidationError("Final amount cannot be negative")
        return value
