from django.contrib import admin
from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['date', 'type', 'category', 'amount', 'payment_method', 'status', 'is_deleted']
    list_filter = ['type', 'status', 'payment_method', 'is_deleted']
    search_fields = ['description', 'reference_number', 'category']
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']
    raw_id_fields = ['patient']
