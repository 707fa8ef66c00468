"""
Payment serializers.
"""
from decimal import Decimal
from rest_framework import serializers

from apps.clinical.models import Patient
from apps.payments.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    """Read/write serializer for ledger entries."""
    patient_id = serializers.PrimaryKeyRelatedField(
        source='patient',
        queryset=Patient.objects.all(),
        required=False,
        allow_null=True
    )
    patient_name = serializers.CharField(source='patient.full_name', read_only=True, default=None)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))

    class Meta:
        model = Payment
        fields = [
            'id',
            'patient_id',
            'patient_name',
            'amount',
            'description',
            'category',
            'date',
            'type',
            'payment_method',
            'reference_number',
            'status',
            'notes',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class CategoryTotalSerializer(serializers.Serializer):
    category = serializers.CharField()
    total = serializers.DecimalField(max_digits=12, decimal_places=2)


class PaymentSummarySerializer(serializers.Serializer):
    total_income = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_expenses = serializers.DecimalField(max_digits=12, decimal_places=2)
    net_income = serializers.DecimalField(max_digits=12, decimal_places=2)
    income_by_category = CategoryTotalSerializer(many=True)
    expenses_by_category = CategoryTotalSerializer(many=True)
