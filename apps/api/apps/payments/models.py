"""
Payments models: payment ledger (income and expenses).
"""
import uuid
from decimal import Decimal
from django.core.validators import MinValueValidator
from django.db import models


# ============================================================================
# Enums
# ============================================================================

class PaymentTypeChoices(models.TextChoices):
    INCOME = 'income', 'Income'
    EXPENSE = 'expense', 'Expense'


class PaymentMethodChoices(models.TextChoices):
    CASH = 'cash', 'Cash'
    CARD = 'card', 'Card'
    BANK_TRANSFER = 'bank_transfer', 'Bank transfer'
    UPI = 'upi', 'UPI'
    OTHER = 'other', 'Other'


class PaymentStatusChoices(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    FAILED = 'failed', 'Failed'
    REFUNDED = 'refunded', 'Refunded'


MEDICINE_CATEGORY = 'medicine'


# ============================================================================
# Ledger
# ============================================================================

class PaymentQuerySet(models.QuerySet):
    def active(self):
        """Rows that have not been tombstoned."""
        return self.filter(is_deleted=False)


class Payment(models.Model):
    """
    Ledger entry, optionally linked to a patient.

    Income rows of category "medicine" are created automatically when a
    session completes with a medicine charge. Deletion sets the
    ``is_deleted``/``deleted_at`` tombstone; rows are never removed, and
    API reads go through ``Payment.objects.active()``.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='payments'
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    description = models.CharField(max_length=255)
    category = models.CharField(max_length=100)
    date = models.DateField()
    type = models.CharField(max_length=10, choices=PaymentTypeChoices.choices)
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethodChoices.choices,
        default=PaymentMethodChoices.CASH
    )
    reference_number = models.CharField(max_length=100, blank=True, null=True)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatusChoices.choices,
        default=PaymentStatusChoices.COMPLETED
    )
    notes = models.TextField(blank=True, null=True)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PaymentQuerySet.as_manager()

    class Meta:
        db_table = 'payment'
        verbose_name = 'Payment'
        verbose_name_plural = 'Payments'
        ordering = ['-date', '-created_at']
        indexes = [
            models.Index(fields=['date'], name='idx_payment_date'),
            models.Index(fields=['type', 'category'], name='idx_payment_type_category'),
            models.Index(fields=['status'], name='idx_payment_status'),
            models.Index(fields=['patient'], name='idx_payment_patient'),
            models.Index(fields=['is_deleted'], name='idx_payment_deleted'),
        ]

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.category}) {self.date}"
