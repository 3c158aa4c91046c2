from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole

ROLE_RESOLUTION_ORDER = (
    UserRole.ADMIN,
    UserRole.EMPLOYEE,
    UserRole.AGENT,
    UserRole.ASSOCIATE,
    UserRole.END_USER,
)

ENROLLMENT_CAPABILITIES = {
    "enrollment.create",
    "enrollment.pay_online",
    "enrollment.pay_test",
    "payments.view",
    "payments.export",
    "coupons.preview",
}

ROLE_CAPABILITIES = {
    UserRole.ADMIN: ENROLLMENT_CAPABILITIES
    | {
        "enrollment.pay_cash",
        "payments.view.all",
        "coupons.manage",
    },
    UserRole.EMPLOYEE: ENROLLMENT_CAPABILITIES | {"enrollment.pay_cash"},
    UserRole.AGENT: set(ENROLLMENT_CAPABILITIES),
    UserRole.ASSOCIATE: set(ENROLLMENT_CAPABILITIES),
    UserRole.END_USER: set(ENROLLMENT_CAPABILITIES),
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in ROLE_RESOLUTION_ORDER:
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.END_USER)


def has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
