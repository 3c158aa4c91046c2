from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import SimpleTestCase, TestCase
from django.urls import Resolver404, resolve, reverse

from apps.accounts.models import UserRole
from apps.common.permissions import has_capability, resolve_role

User = get_user_model()


class RoleResolutionTests(TestCase):
    def test_group_membership_wins_over_role_field(self):
        user = User.objects.create_user(username="promoted", password="promoted123", role=UserRole.AGENT)
        self.assertEqual(resolve_role(user), UserRole.AGENT)

        user.groups.add(Group.objects.create(name=UserRole.EMPLOYEE))
        self.assertEqual(resolve_role(user), UserRole.EMPLOYEE)
        self.assertTrue(has_capability(user, "enrollment.pay_cash"))

    def test_channel_capabilities_by_role(self):
        expectations = {
            UserRole.ADMIN: True,
            UserRole.EMPLOYEE: True,
            UserRole.AGENT: False,
            UserRole.ASSOCIATE: False,
            UserRole.END_USER: False,
        }
        for role, can_take_cash in expectations.items():
            user = User.objects.create_user(username=f"user_{role}", password="secret123", role=role)
            self.assertEqual(has_capability(user, "enrollment.pay_cash"), can_take_cash, role)
            self.assertTrue(has_capability(user, "enrollment.pay_online"))
            self.assertEqual(has_capability(user, "coupons.manage"), role == UserRole.ADMIN)


class ApiRoutingTests(SimpleTestCase):
    def test_viewsets_share_the_api_prefix_without_a_browsable_root(self):
        self.assertEqual(reverse("coupon-list"), "/api/v1/coupons/")
        self.assertEqual(reverse("coupon-preview"), "/api/v1/coupons/validate/")
        self.assertEqual(reverse("payment-list"), "/api/v1/payments/")
        self.assertEqual(reverse("payment-analytics"), "/api/v1/payments/analytics/")
        with self.assertRaises(Resolver404):
            resolve("/api/v1/")
