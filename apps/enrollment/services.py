"""Enrollment orchestration.

Every channel ends in ``commit_enrollment``, which writes the case, the
payment, the coupon usage, the notifications and the activity entry inside one
atomic block. Cash commits immediately. Razorpay and test payments are quoted
first: the quote is stored as a ``PaymentOrder`` and committed later from that
stored record once the gateway reports the payment.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import APIException, NotFound

from apps.accounts.models import UserRole
from apps.activity.services import record_activity
from apps.cases.identifiers import TEST_PREFIX, epoch_millis, generate_case_id, generate_transaction_id
from apps.cases.models import Case, CaseStatus
from apps.catalog.models import Service
from apps.common.exceptions import DuplicateKey, Forbidden, InvalidPayment, InvalidState
from apps.coupons.models import Coupon
from apps.coupons.services import check_usage_limits, compute_discount, evaluate_coupon, find_coupon, record_usage
from apps.enrollment.policies import actor_policy, channel_allowed, policy_for, test_mode_enabled
from apps.notifications.services import notify, notify_all
from apps.payments.gateway import PaymentGateway
from apps.payments.models import Payment, PaymentMethod, PaymentOrder, PaymentOrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

User = get_user_model()

DEFAULT_CASH_NOTE = "Cash payment received"
ZERO = Decimal("0.00")


@dataclass
class PriceQuote:
    original_amount: Decimal
    final_amount: Decimal
    discount_percentage: Decimal = ZERO
    discount_amount: Decimal = ZERO
    coupon: object = None

    @property
    def coupon_applied(self):
        return self.coupon is not None


@dataclass
class EnrollmentResult:
    case: Case
    payment: Payment
    service: Service
    created: bool = True


@contextmanager
def enrollment_transaction(channel):
    # Wraps the outermost atomic block, so the rollback has already happened here.
    try:
        yield
    except IntegrityError as exc:
        logger.warning("Enrollment via %s rolled back on a uniqueness conflict: %s", channel, exc)
        raise DuplicateKey() from exc
    except APIException:
        raise
    except Exception:
        logger.exception("Enrollment via %s rolled back", channel)
        raise


def resolve_price(service, end_user, coupon_code=None, *, lock=False):
    quote = PriceQuote(original_amount=service.price, final_amount=service.price)
    if not coupon_code:
        return quote

    coupon = find_coupon(coupon_code, lock=lock)
    if coupon is None:
        logger.info("Ignoring unknown coupon code %s", coupon_code)
        return quote

    pending_total, pending_for_user = open_reservations(coupon, end_user)
    eligible, reason = evaluate_coupon(
        coupon,
        user=end_user,
        pending_total=pending_total,
        pending_for_user=pending_for_user,
    )
    if not eligible:
        logger.info("Ignoring coupon %s for user %s: %s", coupon.code, end_user.pk, reason)
        return quote

    discount = compute_discount(coupon, service.price)
    return PriceQuote(
        original_amount=discount["original_amount"],
        final_amount=discount["final_amount"],
        discount_percentage=discount["discount_percentage"],
        discount_amount=discount["discount_amount"],
        coupon=coupon,
    )


def open_reservations(coupon, end_user):
    """Count unexpired quotes that still hold this coupon, overall and for ``end_user``."""
    cutoff = timezone.now() - timedelta(minutes=settings.COUPON_RESERVATION_MINUTES)
    open_orders = PaymentOrder.objects.filter(
        coupon=coupon,
        status=PaymentOrderStatus.CREATED,
        created_at__gte=cutoff,
    )
    return open_orders.count(), open_orders.filter(end_user=end_user).count()


def _check_channel(enroller, enroller_role, payment_method, is_test_mode):
    if payment_method == PaymentMethod.CASH:
        if enroller_role not in (UserRole.ADMIN, UserRole.EMPLOYEE) or not channel_allowed(enroller, payment_method):
            raise Forbidden("Cash payment is only available for Admin and Employee roles")
        return
    if (payment_method == PaymentMethod.TEST_PAYMENT or is_test_mode) and not test_mode_enabled():
        raise Forbidden("Test payments are disabled")
    if not channel_allowed(enroller, payment_method):
        raise Forbidden("This payment method is not available for your role")


def _load_targets(enroller, service_id, end_user_id):
    end_user = enroller if end_user_id in (None, "") else User.objects.filter(pk=end_user_id).first()
    if end_user is None:
        raise NotFound("User not found")

    service = Service.objects.filter(pk=service_id).first()
    if service is None:
        raise NotFound("Service not found")
    if not service.is_active:
        raise InvalidState("Service is not active")
    return end_user, service


def create_enrollment(
    *,
    enroller,
    service_id,
    payment_method,
    end_user_id=None,
    coupon_code=None,
    cash_details=None,
    is_test_mode=False,
):
    """Start an enrollment on the requested channel.

    Returns an ``EnrollmentResult`` for cash and a stored ``PaymentOrder``
    (the quote) for razorpay and test payments. Preconditions are checked
    before anything is written: channel permission, target user, service.
    """
    enroller_role, policy = actor_policy(enroller)
    _check_channel(enroller, enroller_role, payment_method, is_test_mode)
    end_user, service = _load_targets(enroller, service_id, end_user_id)

    if payment_method == PaymentMethod.CASH:
        with enrollment_transaction(payment_method):
            with transaction.atomic():
                quote = resolve_price(service, end_user, coupon_code, lock=True)
                return commit_enrollment(
                    enroller=enroller,
                    enroller_role=enroller_role,
                    policy=policy,
                    end_user=end_user,
                    service=service,
                    payment_method=payment_method,
                    quote=quote,
                    transaction_id=generate_transaction_id(policy.cash_prefix),
                    cash_details=cash_details or {},
                )

    test_mode = payment_method == PaymentMethod.TEST_PAYMENT or bool(is_test_mode)
    # The coupon row stays locked until the order holding it is stored.
    with transaction.atomic():
        quote = resolve_price(service, end_user, coupon_code, lock=True)
        return create_payment_order(
            enroller=enroller,
            enroller_role=enroller_role,
            end_user=end_user,
            service=service,
            payment_method=payment_method,
            quote=quote,
            test_mode=test_mode,
        )


def create_payment_order(*, enroller, enroller_role, end_user, service, payment_method, quote, test_mode):
    receipt = f"rcpt_{epoch_millis()}"
    gateway_order = PaymentGateway().create_order(quote.final_amount, test_mode=test_mode, receipt=receipt)
    order = PaymentOrder.objects.create(
        gateway_order_id=gateway_order["id"],
        payment_method=payment_method,
        is_test_mode=test_mode,
        service=service,
        end_user=end_user,
        enroller=enroller,
        enroller_role=enroller_role,
        coupon=quote.coupon,
        coupon_code=quote.coupon.code if quote.coupon_applied else "",
        original_amount=quote.original_amount,
        discount_percentage=quote.discount_percentage,
        discount_amount=quote.discount_amount,
        final_amount=quote.final_amount,
        amount_minor=gateway_order["amount"],
        currency=gateway_order["currency"],
        receipt=gateway_order.get("receipt") or receipt,
    )
    logger.info(
        "Quoted %s enrollment of user %s in %s: order %s for %s",
        payment_method,
        end_user.pk,
        service.pk,
        order.gateway_order_id,
        quote.final_amount,
    )
    return order


def complete_verified_enrollment(*, enroller, gateway_order_id, gateway_payment_id=None, signature=None):
    """Commit a quoted enrollment once the gateway has reported the payment.

    The stored order is locked for the duration, so concurrent callbacks for
    the same order commit at most once. Replaying a completed order with the
    same payment id returns the existing records with ``created=False``.
    """
    with enrollment_transaction("gateway"):
        with transaction.atomic():
            order = (
                PaymentOrder.objects.select_for_update()
                .select_related("service", "end_user", "coupon", "payment__case")
                .filter(gateway_order_id=gateway_order_id)
                .first()
            )
            if order is None:
                raise NotFound("Payment order not found")
            if order.enroller_id != enroller.pk:
                raise Forbidden("This payment order belongs to another user")

            verified = PaymentGateway().verify_payment(
                order_id=order.gateway_order_id,
                payment_id=gateway_payment_id,
                signature=signature,
                test_mode=order.is_test_mode,
            )
            if not verified:
                raise InvalidPayment()

            if order.status == PaymentOrderStatus.COMPLETED:
                return _replayed_result(order, gateway_payment_id)

            service = order.service
            if not service.is_active:
                raise InvalidState("Service is not active")

            policy = policy_for(order.enroller_role)
            transaction_id = gateway_payment_id or generate_transaction_id(TEST_PREFIX)
            quote = _confirmed_quote(order)
            result = commit_enrollment(
                enroller=enroller,
                enroller_role=order.enroller_role,
                policy=policy,
                end_user=order.end_user,
                service=service,
                payment_method=order.payment_method,
                quote=quote,
                transaction_id=transaction_id,
                gateway_order_id=order.gateway_order_id,
            )

            order.status = PaymentOrderStatus.COMPLETED
            order.payment = result.payment
            order.completed_at = timezone.now()
            order.save(update_fields=["status", "payment", "completed_at"])
            return result


def _confirmed_quote(order):
    """Rebuild the stored quote, re-checking coupon limits under the coupon row lock.

    A test order whose coupon ran out is committed at full price. A live order
    was paid at the discounted amount, so it is refused and left open instead.
    """
    quote = PriceQuote(
        original_amount=order.original_amount,
        final_amount=order.final_amount,
        discount_percentage=order.discount_percentage,
        discount_amount=order.discount_amount,
    )
    if order.coupon_id is None:
        return quote

    coupon = Coupon.objects.select_for_update().get(pk=order.coupon_id)
    eligible, reason = check_usage_limits(coupon, order.end_user)
    if eligible:
        quote.coupon = coupon
        return quote

    if not order.is_test_mode:
        logger.error(
            "Refusing paid order %s: coupon %s is no longer available (%s)",
            order.gateway_order_id,
            coupon.code,
            reason,
        )
        raise InvalidState("Coupon is no longer available for this order")

    logger.warning("Committing test order %s at full price: coupon %s %s", order.gateway_order_id, coupon.code, reason)
    return PriceQuote(original_amount=order.original_amount, final_amount=order.original_amount)


def _replayed_result(order, gateway_payment_id):
    payment = order.payment
    if payment is None or (gateway_payment_id and gateway_payment_id != payment.transaction_id):
        raise InvalidState("This payment order has already been completed with a different payment")
    logger.info("Replayed completed order %s, returning case %s", order.gateway_order_id, payment.case.case_id)
    return EnrollmentResult(case=payment.case, payment=payment, service=order.service, created=False)


@transaction.atomic
def commit_enrollment(
    *,
    enroller,
    enroller_role,
    policy,
    end_user,
    service,
    payment_method,
    quote,
    transaction_id,
    gateway_order_id="",
    cash_details=None,
):
    now = timezone.now()
    sla_hours = service.sla_hours or settings.CASE_DEFAULT_SLA_HOURS
    case = Case.objects.create(
        case_id=generate_case_id(),
        end_user=end_user,
        service=service,
        status=CaseStatus.NEW,
        deadline=now + timedelta(hours=sla_hours),
        enrolled_by=enroller,
        enrollment_type=policy.enrollment_type,
        enrolled_at=now,
    )

    is_cash = payment_method == PaymentMethod.CASH
    cash_details = cash_details or {}
    payment = Payment.objects.create(
        case=case,
        end_user=end_user,
        service=service,
        amount=quote.final_amount,
        original_amount=quote.original_amount,
        discount_amount=quote.discount_amount,
        discount_percentage=quote.discount_percentage,
        coupon=quote.coupon,
        coupon_code=quote.coupon.code if quote.coupon_applied else "",
        transaction_id=transaction_id,
        payment_method=payment_method,
        status=PaymentStatus.COMPLETED,
        gateway_order_id=gateway_order_id,
        payment_date=now,
        cash_received_by=enroller if is_cash else None,
        cash_received_at=now if is_cash else None,
        cash_receipt_number=(cash_details.get("receipt_number") or "") if is_cash else "",
        cash_notes=(cash_details.get("notes") or DEFAULT_CASH_NOTE) if is_cash else "",
        enrolled_by=enroller,
        enroller_role=enroller_role,
        initiated_from=policy.initiated_from,
    )

    if quote.coupon_applied:
        record_usage(
            coupon=quote.coupon,
            user=end_user,
            case=case,
            payment=payment,
            discount_amount=quote.discount_amount,
        )

    _notify_enrollment(case=case, service=service, end_user=end_user, payment_method=payment_method, policy=policy)

    record_activity(
        actor=enroller,
        action="enrollment.commit",
        entity_type="case",
        entity_id=case.id,
        case=case,
        payload={
            "transaction_id": transaction_id,
            "payment_method": payment_method,
            "amount": quote.final_amount,
            "coupon_code": payment.coupon_code,
            "enrollment_type": policy.enrollment_type,
        },
    )

    logger.info(
        "Committed %s enrollment %s with payment %s (amount %s)",
        payment_method,
        case.case_id,
        transaction_id,
        quote.final_amount,
    )
    return EnrollmentResult(case=case, payment=payment, service=service)


def _active_admins():
    return User.objects.filter(role=UserRole.ADMIN, is_active=True).order_by("pk")


def _notify_enrollment(*, case, service, end_user, payment_method, policy):
    if payment_method == PaymentMethod.CASH:
        notify(
            recipient=end_user,
            title="Service Enrollment",
            message=f"You have been enrolled in {service.name}. Payment received via cash.",
            related_case=case,
        )
        if policy.notify_admins_on_cash:
            notify_all(
                recipients=_active_admins(),
                title="New Cash Enrollment",
                message=f"A new case ({case.case_id}) has been created with cash payment.",
                related_case=case,
            )
        return

    notify_all(
        recipients=_active_admins(),
        title="New Case Created",
        message=f"A new case ({case.case_id}) has been created for service {service.name}.",
        related_case=case,
    )
    notify(
        recipient=end_user,
        title="Service Enrollment",
        message=f"You have been enrolled in {service.name}. Our team will start processing your case shortly.",
        related_case=case,
    )
