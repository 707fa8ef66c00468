"""
Payment ledger services.

- record_medicine_charge: the income row derived from a completed session
- soft_delete_payment: tombstone instead of DELETE
- payment_summary / payment_categories: ledger aggregates
"""
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum

from apps.core import clock
from apps.core.exceptions import get_object_or_not_found
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.payments.models import (
    MEDICINE_CATEGORY,
    Payment,
    PaymentMethodChoices,
    PaymentStatusChoices,
    PaymentTypeChoices,
)

logger = get_sanitized_logger(__name__)


def record_medicine_charge(session, amount: Decimal, now=None) -> Payment:
    """
    Create the income payment for medicine handed out in ``session``.

    Must be called inside the session-completion transaction so a failure
    here rolls the completion back as well.
    """
    now = clock.localize(now) if now else clock.now()
    payment = Payment.objects.create(
        patient_id=session.patient_id,
        amount=amount,
        description=f'Medicine charges for session #{session.id}',
        category=MEDICINE_CATEGORY,
        date=now.date(),
        type=PaymentTypeChoices.INCOME,
        payment_method=PaymentMethodChoices.CASH,
        status=PaymentStatusChoices.COMPLETED,
        notes=f'Medicine charges for {session.patient.full_name}',
    )

    metrics.medicine_charges_total.inc()
    metrics.payments_total.labels(type=PaymentTypeChoices.INCOME).inc()
    log_domain_event(
        'medicine_charge_recorded',
        entity_type='Payment',
        entity_id=str(payment.id),
        entity_ids={'session_id': str(session.id), 'patient_id': str(session.patient_id)},
        amount=str(amount),
    )
    return payment


def soft_delete_payment(payment_id, now=None) -> Payment:
    """
    Tombstone a payment.

    Raises:
        NotFoundError: Payment does not exist or is already deleted
    """
    now = clock.localize(now) if now else clock.now()
    with transaction.atomic():
        payment = get_object_or_not_found(
            Payment.objects.active().select_for_update(), 'Payment not found', pk=payment_id
        )
        payment.is_deleted = True
        payment.deleted_at = now
        payment.save(update_fields=['is_deleted', 'deleted_at', 'updated_at'])

    log_domain_event(
        'payment_deleted',
        entity_type='Payment',
        entity_id=str(payment.id),
    )
    return payment


def _totals_by_category(queryset):
    rows = (
        queryset.values('category')
        .annotate(total=Sum('amount'))
        .order_by('category')
    )
    return [{'category': row['category'], 'total': row['total']} for row in rows]


def payment_summary(start_date=None, end_date=None) -> dict:
    """
    Income/expense totals (completed, non-deleted rows) with per-category breakdown.

    Optional inclusive ``start_date``/``end_date`` bounds apply to ``date``.
    """
    queryset = Payment.objects.active().filter(status=PaymentStatusChoices.COMPLETED)
    if start_date:
        queryset = queryset.filter(date__gte=start_date)
    if end_date:
        queryset = queryset.filter(date__lte=end_date)

    income = queryset.filter(type=PaymentTypeChoices.INCOME)
    expenses = queryset.filter(type=PaymentTypeChoices.EXPENSE)

    total_income = income.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
    total_expenses = expenses.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')

    return {
        'total_income': total_income,
        'total_expenses': total_expenses,
        'net_income': total_income - total_expenses,
        'income_by_category': _totals_by_category(income),
        'expenses_by_category': _totals_by_category(expenses),
    }


def payment_categories() -> dict:
    """Distinct categories in use, split by payment type."""
    active = Payment.objects.active()
    return {
        'income': list(
            active.filter(type=PaymentTypeChoices.INCOME)
            .order_by('category').values_list('category', flat=True).distinct()
        ),
        'expense': list(
            active.filter(type=PaymentTypeChoices.EXPENSE)
            .order_by('category').values_list('category', flat=True).distinct()
        ),
    }
