from dataclasses import dataclass

from django.conf import settings

from apps.accounts.models import UserRole
from apps.cases.identifiers import ADMIN_PREFIX, CASH_PREFIX, EMPLOYEE_PREFIX
from apps.cases.models import EnrollmentType
from apps.common.permissions import has_capability, resolve_role
from apps.payments.models import InitiatedFrom, PaymentMethod


@dataclass(frozen=True)
class EnrollmentPolicy:
    enrollment_type: str
    initiated_from: str
    cash_prefix: str = CASH_PREFIX
    notify_admins_on_cash: bool = False


ENROLLMENT_POLICIES = {
    UserRole.ADMIN: EnrollmentPolicy(EnrollmentType.ADMIN, InitiatedFrom.ADMIN_PANEL, cash_prefix=ADMIN_PREFIX),
    UserRole.EMPLOYEE: EnrollmentPolicy(
        EnrollmentType.EMPLOYEE,
        InitiatedFrom.EMPLOYEE_PANEL,
        cash_prefix=EMPLOYEE_PREFIX,
        notify_admins_on_cash=True,
    ),
    UserRole.AGENT: EnrollmentPolicy(EnrollmentType.AGENT, InitiatedFrom.AGENT_PORTAL),
    UserRole.ASSOCIATE: EnrollmentPolicy(EnrollmentType.ASSOCIATE, InitiatedFrom.ASSOCIATE_PORTAL),
    UserRole.END_USER: EnrollmentPolicy(EnrollmentType.SELF, InitiatedFrom.END_USER_PORTAL),
}

CHANNEL_CAPABILITIES = {
    PaymentMethod.RAZORPAY: "enrollment.pay_online",
    PaymentMethod.CASH: "enrollment.pay_cash",
    PaymentMethod.TEST_PAYMENT: "enrollment.pay_test",
}

CHANNEL_DESCRIPTIONS = {
    PaymentMethod.RAZORPAY: "Pay online with card, UPI or netbanking",
    PaymentMethod.CASH: "Record a cash payment received in person",
    PaymentMethod.TEST_PAYMENT: "Simulated payment for testing and demos",
}


def policy_for(role):
    return ENROLLMENT_POLICIES.get(role, ENROLLMENT_POLICIES[UserRole.END_USER])


def actor_policy(user):
    role = resolve_role(user)
    return role, policy_for(role)


def test_mode_enabled():
    return settings.PAYMENT_TEST_MODE_ENABLED


def channel_allowed(user, payment_method):
    capability = CHANNEL_CAPABILITIES.get(payment_method)
    if capability is None:
        return False
    if payment_method == PaymentMethod.TEST_PAYMENT and not test_mode_enabled():
        return False
    return has_capability(user, capability)


def available_channels(user):
    return [
        {
            "value": method.value,
            "label": method.label,
            "description": CHANNEL_DESCRIPTIONS[method],
        }
        for method in CHANNEL_CAPABILITIES
        if channel_allowed(user, method)
    ]
