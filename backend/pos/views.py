from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.utils import timezone
import uuid
from backend.core.utils import get_organization
from .models import Order
from .serializers import OrderSerializer


def generate_order_number():
    """Generate a unique order number (ORD-YYYYMMDD-XXXXXXXX)"""
    order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Order.objects.filter(order_number=order_number).exists():
        order_number = f"ORD-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return order_number


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_list_create(request):
    """List orders of an organization or create a new order"""
    if request.method == 'GET':
        organization_id = request.query_params.get('organizationId', None)
        if not organization_id:
            return Response({'error': 'Organization ID is required'}, status=status.HTTP_400_BAD_REQUEST)
        organization = get_organization(organization_id, user=request.user)
        if organization is None:
            return Response({'error': 'Organization not found'}, status=status.HTTP_404_NOT_FOUND)

        queryset = Order.objects.select_related('created_by').filter(organization=organization)
        status_filter = request.query_params.get('status', None)
        date_from = request.query_params.get('date_from', None)
        date_to = request.query_params.get('date_to', None)

        if status_filter:
            queryset = queryset.filter(status=status_filter)
        if date_from:
            queryset = queryset.filter(order_date__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__date__lte=date_to)

        queryset = queryset.order_by('-order_date')

        try:
            page = int(request.query_params.get('page', 1))
            limit = int(request.query_params.get('limit', 50))
        except ValueError:
            return Response({'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)

        paginator = Paginator(queryset, limit)
        page_obj = paginator.get_page(page)

        serializer = OrderSerializer(page_obj, many=True)
        return Response({
            'results': serializer.data,
            'count': paginator.count,
            'next': page_obj.next_page_number() if page_obj.has_next() else None,
            'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
            'page': page,
            'page_size': limit,
            'total_pages': paginator.num_pages,
        })
    else:  # POST
        serializer = OrderSerializer(data=request.data)
        if serializer.is_valid():
            if get_organization(serializer.validated_data['organization'].id, user=request.user) is None:
                return Response({'error': 'Organization not found'}, status=status.HTTP_404_NOT_FOUND)
            validated_data = serializer.validated_data.copy()
            if not validated_data.get('order_number'):
                validated_data['order_number'] = generate_order_number()
            order = serializer.save(created_by=request.user, **validated_data)
            return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
