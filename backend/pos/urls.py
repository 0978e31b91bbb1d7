from django.urls import path
from .views import order_list_create

urlpatterns = [
    # Order endpoints
    path('pos/orders/', order_list_create, name='order-list-create'),
]
