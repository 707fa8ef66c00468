"""
Payment ledger viewset.
"""
from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.core.observability import get_sanitized_logger, metrics
from apps.payments.models import Payment
from apps.payments.permissions import PaymentPermission
from apps.payments.serializers import PaymentSerializer, PaymentSummarySerializer
from apps.payments.services import payment_categories, payment_summary, soft_delete_payment

logger = get_sanitized_logger(__name__)


class PaymentViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Payment endpoints.

    Endpoints:
    - GET /api/v1/payments/
    - POST /api/v1/payments/
    - GET /api/v1/payments/{id}/
    - PATCH /api/v1/payments/{id}/
    - DELETE /api/v1/payments/{id}/ (tombstone)
    - GET /api/v1/payments/summary/
    - GET /api/v1/payments/categories/
    """
    serializer_class = PaymentSerializer
    permission_classes = [PaymentPermission]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_queryset(self):
        """
        Filters:
        - type: income|expense
        - status: payment status
        - category: exact category ("all" means no filter)
        - search: substring of description or reference_number
        - start_date / end_date: inclusive bounds on date
        """
        queryset = Payment.objects.active().select_related('patient')
        params = self.request.query_params

        payment_type = params.get('type')
        if payment_type:
            queryset = queryset.filter(type=payment_type)

        status_filter = params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        category = params.get('category')
        if category and category != 'all':
            queryset = queryset.filter(category=category)

        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(description__icontains=search) | Q(reference_number__icontains=search)
            )

        start_date = params.get('start_date')
        if start_date:
            queryset = queryset.filter(date__gte=start_date)

        end_date = params.get('end_date')
        if end_date:
            queryset = queryset.filter(date__lte=end_date)

        return queryset.order_by('-date', '-created_at')

    def perform_create(self, serializer):
        payment = serializer.save()
        metrics.payments_total.labels(type=payment.type).inc()
        logger.info(
            'Payment recorded',
            extra={'event': 'payment_recorded', 'payment_id': str(payment.id), 'type': payment.type}
        )

    def destroy(self, request, *args, **kwargs):
        """DELETE /api/v1/payments/{id}/ - sets the tombstone, row is kept."""
        soft_delete_payment(kwargs['pk'])
        return Response(
            {'status': 'success', 'message': 'Payment deleted successfully'},
            status=status.HTTP_200_OK
        )

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        """GET /api/v1/payments/summary/?start_date=&end_date="""
        data = payment_summary(
            start_date=request.query_params.get('start_date'),
            end_date=request.query_params.get('end_date'),
        )
        return Response(PaymentSummarySerializer(data).data)

    @action(detail=False, methods=['get'], url_path='categories')
    def categories(self, request):
        """GET /api/v1/payments/categories/"""
        return Response(payment_categories())
