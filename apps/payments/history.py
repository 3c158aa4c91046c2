"""Role-scoped read side over payments and the cases they settle."""
from decimal import Decimal

from django.conf import settings
from django.db.models import Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce, TruncDate

from apps.accounts.models import UserRole
from apps.common.permissions import has_capability, resolve_role
from apps.payments.models import Payment, PaymentStatus

MONEY = DecimalField(max_digits=16, decimal_places=2)

EXPORT_COLUMNS = [
    ("payment_date", "Payment Date"),
    ("invoice_number", "Invoice Number"),
    ("transaction_id", "Transaction ID"),
    ("case_id", "Case ID"),
    ("end_user", "End User"),
    ("end_user_email", "End User Email"),
    ("service", "Service"),
    ("payment_method", "Payment Method"),
    ("status", "Status"),
    ("original_amount", "Original Amount"),
    ("discount_amount", "Discount Amount"),
    ("coupon_code", "Coupon Code"),
    ("amount", "Amount"),
    ("enrolled_by", "Enrolled By"),
]


def _employee_scope(user):
    return Q(case__employee=user) | Q(case__enrolled_by=user)


def _onboarder_scope(user):
    return Q(enrolled_by=user) | Q(case__enrolled_by=user) | Q(end_user__agent=user)


def _end_user_scope(user):
    return Q(end_user=user) | Q(case__end_user=user)


ROLE_SCOPES = {
    UserRole.EMPLOYEE: _employee_scope,
    UserRole.AGENT: _onboarder_scope,
    UserRole.ASSOCIATE: _onboarder_scope,
    UserRole.END_USER: _end_user_scope,
}


def base_queryset():
    return Payment.objects.select_related(
        "case",
        "case__employee",
        "end_user",
        "service",
        "enrolled_by",
        "coupon",
    ).order_by("-payment_date")


def scoped_payments(user):
    queryset = base_queryset()
    if has_capability(user, "payments.view.all"):
        return queryset
    scope = ROLE_SCOPES.get(resolve_role(user), _end_user_scope)
    return queryset.filter(scope(user))


def filter_payments(queryset, *, status=None, payment_method=None, date_from=None, date_to=None, q=None):
    if status:
        queryset = queryset.filter(status=status)
    if payment_method:
        queryset = queryset.filter(payment_method=payment_method)
    if date_from:
        queryset = queryset.filter(payment_date__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(payment_date__date__lte=date_to)
    if q:
        queryset = queryset.filter(
            Q(case__case_id__icontains=q)
            | Q(transaction_id__icontains=q)
            | Q(invoice_number__icontains=q)
            | Q(coupon_code__icontains=q)
            | Q(service__name__icontains=q)
            | Q(end_user__username__icontains=q)
            | Q(end_user__first_name__icontains=q)
            | Q(end_user__last_name__icontains=q)
            | Q(end_user__email__icontains=q)
        )
    return queryset


def payment_analytics(queryset):
    completed = queryset.filter(status=PaymentStatus.COMPLETED)
    totals = completed.aggregate(
        total_revenue=Coalesce(Sum("amount"), Value(Decimal("0.00")), output_field=MONEY),
        total_discount=Coalesce(Sum("discount_amount"), Value(Decimal("0.00")), output_field=MONEY),
        total_payments=Count("id", distinct=True),
        enrolled_users_count=Count("end_user", distinct=True),
    )
    users = totals["enrolled_users_count"]
    average = (totals["total_revenue"] / users).quantize(Decimal("0.01")) if users else Decimal("0.00")

    by_method = list(
        completed.order_by()
        .values("payment_method")
        .annotate(
            total_amount=Coalesce(Sum("amount"), Value(Decimal("0.00")), output_field=MONEY),
            transactions=Count("id", distinct=True),
        )
        .order_by("payment_method")
    )
    by_status = list(
        queryset.order_by()
        .values("status")
        .annotate(
            total_amount=Coalesce(Sum("amount"), Value(Decimal("0.00")), output_field=MONEY),
            transactions=Count("id", distinct=True),
        )
        .order_by("status")
    )
    by_day = list(
        completed.order_by()
        .annotate(day=TruncDate("payment_date"))
        .values("day")
        .annotate(
            total_amount=Coalesce(Sum("amount"), Value(Decimal("0.00")), output_field=MONEY),
            transactions=Count("id", distinct=True),
        )
        .order_by("day")
    )
    return {
        **totals,
        "average_revenue_per_user": average,
        "by_method": by_method,
        "by_status": by_status,
        "by_day": by_day,
    }


def export_row(payment):
    return {
        "payment_date": payment.payment_date.isoformat(),
        "invoice_number": payment.invoice_number or "",
        "transaction_id": payment.transaction_id,
        "case_id": payment.case.case_id,
        "end_user": payment.end_user.display_name,
        "end_user_email": payment.end_user.email,
        "service": payment.service.name,
        "payment_method": payment.get_payment_method_display(),
        "status": payment.get_status_display(),
        "original_amount": payment.original_amount,
        "discount_amount": payment.discount_amount,
        "coupon_code": payment.coupon_code,
        "amount": payment.amount,
        "enrolled_by": payment.enrolled_by.username if payment.enrolled_by else "",
    }


def build_receipt(payment):
    end_user = payment.end_user
    case = payment.case
    return {
        "company": dict(settings.RECEIPT_COMPANY),
        "invoice_number": payment.invoice_number,
        "transaction_id": payment.transaction_id,
        "payment_date": payment.payment_date,
        "payment_method": payment.payment_method,
        "payment_method_label": payment.get_payment_method_display(),
        "status": payment.status,
        "customer": {
            "id": end_user.pk,
            "name": end_user.display_name,
            "email": end_user.email,
            "phone": end_user.phone,
        },
        "service": payment.service.summary(),
        "case": {
            "id": str(case.id),
            "case_id": case.case_id,
            "status": case.status,
        },
        "amounts": {
            "original_amount": payment.original_amount,
            "discount_percentage": payment.discount_percentage,
            "discount_amount": payment.discount_amount,
            "tax_amount": payment.tax_amount,
            "amount": payment.amount,
            "currency": settings.PAYMENT_CURRENCY,
        },
        "coupon_code": payment.coupon_code or None,
        "cash": {
            "receipt_number": payment.cash_receipt_number,
            "notes": payment.cash_notes,
            "received_by": payment.cash_received_by.username if payment.cash_received_by else None,
            "received_at": payment.cash_received_at,
        }
        if payment.is_cash
        else None,
    }
