from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.activity.models import ActivityLog
from apps.cases.models import Case
from apps.catalog.models import Service, ServiceType
from apps.coupons.models import Coupon, CouponRejection, CouponUsage
from apps.coupons.services import (
    check_usage_limits,
    check_user_eligibility,
    check_validity,
    compute_discount,
    evaluate_coupon,
    find_coupon,
    record_usage,
)
from apps.payments.models import Payment, PaymentMethod, PaymentStatus

User = get_user_model()


def make_settled_case(end_user, service, suffix):
    case = Case.objects.create(case_id=f"CASE-TEST-{suffix}", end_user=end_user, service=service)
    payment = Payment.objects.create(
        case=case,
        end_user=end_user,
        service=service,
        amount=service.price,
        original_amount=service.price,
        transaction_id=f"TXN-TEST-{suffix}",
        payment_method=PaymentMethod.TEST_PAYMENT,
        status=PaymentStatus.COMPLETED,
    )
    return case, payment


class CouponEngineTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="admin")
        self.user_a = User.objects.create_user(username="user_a", password="user123", role="end_user")
        self.user_b = User.objects.create_user(username="user_b", password="user123", role="end_user")
        self.service = Service.objects.create(name="Trademark Filing", type=ServiceType.TRADEMARK, price=Decimal("1000.00"))
        self.t1 = timezone.now() - timedelta(days=1)
        self.t2 = timezone.now() + timedelta(days=1)
        self.coupon = Coupon.objects.create(
            code="save20",
            discount_percentage=Decimal("20"),
            valid_from=self.t1,
            valid_to=self.t2,
            created_by=self.admin,
        )

    def test_code_is_stored_and_matched_uppercase(self):
        self.assertEqual(self.coupon.code, "SAVE20")
        self.assertEqual(find_coupon(" Save20 "), self.coupon)
        self.assertIsNone(find_coupon("missing"))
        self.assertIsNone(find_coupon(""))

    def test_validity_window_bounds(self):
        self.assertEqual(check_validity(self.coupon, self.t1), (True, None))
        self.assertEqual(check_validity(self.coupon, self.t2), (True, None))
        self.assertEqual(
            check_validity(self.coupon, self.t1 - timedelta(seconds=1)),
            (False, CouponRejection.NOT_YET_VALID),
        )
        self.assertEqual(
            check_validity(self.coupon, self.t2 + timedelta(seconds=1)),
            (False, CouponRejection.EXPIRED),
        )

    def test_inactive_coupon_is_rejected_first(self):
        self.coupon.is_active = False
        self.coupon.save()
        self.assertEqual(check_validity(self.coupon, self.t2 + timedelta(days=5)), (False, CouponRejection.INACTIVE))

    def test_per_user_limit_after_usage(self):
        self.assertEqual(check_user_eligibility(self.coupon, self.user_a), (True, None))
        case, payment = make_settled_case(self.user_a, self.service, "A1")
        record_usage(coupon=self.coupon, user=self.user_a, case=case, payment=payment, discount_amount=Decimal("200"))

        self.assertEqual(
            check_user_eligibility(self.coupon, self.user_a),
            (False, CouponRejection.PER_USER_LIMIT_REACHED),
        )
        self.assertEqual(check_user_eligibility(self.coupon, self.user_b), (True, None))

    def test_total_limit_reached_for_every_user(self):
        self.coupon.max_total_uses = 2
        self.coupon.max_uses_per_user = 5
        self.coupon.save()
        for suffix in ("A1", "A2"):
            case, payment = make_settled_case(self.user_a, self.service, suffix)
            record_usage(coupon=self.coupon, user=self.user_a, case=case, payment=payment, discount_amount=Decimal("200"))

        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 2)
        self.assertEqual(self.coupon.remaining_uses, 0)
        self.assertEqual(check_validity(self.coupon), (False, CouponRejection.LIMIT_REACHED))
        self.assertEqual(evaluate_coupon(self.coupon, user=self.user_b), (False, CouponRejection.LIMIT_REACHED))

    def test_pending_uses_count_against_both_limits(self):
        self.coupon.max_total_uses = 2
        self.coupon.save()

        self.assertEqual(evaluate_coupon(self.coupon, user=self.user_a, pending_total=1), (True, None))
        self.assertEqual(
            evaluate_coupon(self.coupon, user=self.user_a, pending_total=2),
            (False, CouponRejection.LIMIT_REACHED),
        )
        self.assertEqual(
            evaluate_coupon(self.coupon, user=self.user_a, pending_total=1, pending_for_user=1),
            (False, CouponRejection.PER_USER_LIMIT_REACHED),
        )
        self.assertEqual(check_usage_limits(self.coupon, self.user_a), (True, None))

    def test_checks_do_not_change_stored_state(self):
        first = (check_validity(self.coupon), check_user_eligibility(self.coupon, self.user_a))
        for _ in range(3):
            self.assertEqual((check_validity(self.coupon), check_user_eligibility(self.coupon, self.user_a)), first)
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 0)
        self.assertFalse(CouponUsage.objects.exists())

    def test_record_usage_is_idempotent_per_case(self):
        case, payment = make_settled_case(self.user_a, self.service, "A1")
        usage, created = record_usage(
            coupon=self.coupon, user=self.user_a, case=case, payment=payment, discount_amount=Decimal("200")
        )
        again, created_again = record_usage(
            coupon=self.coupon, user=self.user_a, case=case, payment=payment, discount_amount=Decimal("200")
        )

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(usage.pk, again.pk)
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 1)
        self.assertEqual(self.coupon.usage_history.count(), self.coupon.current_uses)

    def test_discount_rounds_the_discount_not_the_total(self):
        result = compute_discount(self.coupon, Decimal("1000"))
        self.assertEqual(result["discount_amount"], Decimal("200.00"))
        self.assertEqual(result["final_amount"], Decimal("800.00"))

        self.coupon.discount_percentage = Decimal("15")
        odd = compute_discount(self.coupon, Decimal("999"))
        self.assertEqual(odd["discount_amount"], Decimal("150.00"))
        self.assertEqual(odd["final_amount"], Decimal("849.00"))

    def test_discount_bounds(self):
        for percentage in (Decimal("1"), Decimal("33"), Decimal("100")):
            self.coupon.discount_percentage = percentage
            for amount in (Decimal("0"), Decimal("1"), Decimal("49.99"), Decimal("10000000")):
                result = compute_discount(self.coupon, amount)
                self.assertGreaterEqual(result["discount_amount"], 0)
                self.assertLessEqual(result["final_amount"], result["original_amount"])
                self.assertEqual(result["final_amount"], result["original_amount"] - result["discount_amount"])

        self.coupon.discount_percentage = Decimal("100")
        self.assertEqual(compute_discount(self.coupon, Decimal("5000"))["final_amount"], Decimal("0.00"))


class CouponApiTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="admin")
        self.employee = User.objects.create_user(username="employee", password="employee123", role="employee")
        self.user_a = User.objects.create_user(username="user_a", password="user123", role="end_user")
        self.user_b = User.objects.create_user(username="user_b", password="user123", role="end_user")
        self.service = Service.objects.create(name="Copyright Filing", type=ServiceType.COPYRIGHT, price=Decimal("1000.00"))
        self.valid_from = timezone.now() - timedelta(days=1)
        self.valid_to = timezone.now() + timedelta(days=30)

    def auth(self, username, password):
        return self.client.post("/api/v1/auth/token/", {"username": username, "password": password}, format="json")

    def auth_as(self, username, password):
        token = self.auth(username, password).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def coupon_payload(self, **overrides):
        payload = {
            "code": "launch10",
            "description": "Launch offer",
            "discount_percentage": "10.00",
            "valid_from": self.valid_from.isoformat(),
            "valid_to": self.valid_to.isoformat(),
            "max_total_uses": 100,
            "max_uses_per_user": 1,
        }
        payload.update(overrides)
        return payload

    def make_coupon(self, code, **fields):
        defaults = {
            "discount_percentage": Decimal("20"),
            "valid_from": self.valid_from,
            "valid_to": self.valid_to,
            "created_by": self.admin,
        }
        defaults.update(fields)
        return Coupon.objects.create(code=code, **defaults)

    def test_admin_creates_coupon_with_normalized_code(self):
        self.auth_as("admin", "admin123")
        response = self.client.post("/api/v1/coupons/", self.coupon_payload(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["code"], "LAUNCH10")
        self.assertEqual(response.data["current_uses"], 0)
        self.assertEqual(response.data["remaining_uses"], 100)
        coupon = Coupon.objects.get(code="LAUNCH10")
        self.assertEqual(coupon.created_by, self.admin)
        self.assertTrue(ActivityLog.objects.filter(action="coupon.create", entity_id=str(coupon.id)).exists())

    def test_create_rejects_duplicate_code_and_bad_window(self):
        self.make_coupon("LAUNCH10")
        self.auth_as("admin", "admin123")

        duplicate = self.client.post("/api/v1/coupons/", self.coupon_payload(code="Launch10"), format="json")
        self.assertEqual(duplicate.status_code, 400)
        self.assertFalse(duplicate.data["success"])
        self.assertIn("code", duplicate.data["fields"])
        self.assertEqual(str(duplicate.data["fields"]["code"][0]), "Coupon code already exists")

        bad_window = self.client.post(
            "/api/v1/coupons/",
            self.coupon_payload(code="WINDOW", valid_to=self.valid_from.isoformat()),
            format="json",
        )
        self.assertEqual(bad_window.status_code, 400)
        self.assertEqual(
            str(bad_window.data["fields"]["valid_to"][0]),
            "Valid to date must be after valid from date",
        )

        out_of_range = self.client.post(
            "/api/v1/coupons/",
            self.coupon_payload(code="TOOMUCH", discount_percentage="150"),
            format="json",
        )
        self.assertEqual(out_of_range.status_code, 400)
        self.assertIn("discount_percentage", out_of_range.data["fields"])

    def test_update_keeps_code_immutable(self):
        coupon = self.make_coupon("FIXED")
        self.auth_as("admin", "admin123")

        ok = self.client.patch(f"/api/v1/coupons/{coupon.id}/", {"description": "Updated"}, format="json")
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.data["description"], "Updated")

        renamed = self.client.patch(f"/api/v1/coupons/{coupon.id}/", {"code": "OTHER"}, format="json")
        self.assertEqual(renamed.status_code, 400)
        coupon.refresh_from_db()
        self.assertEqual(coupon.code, "FIXED")

    def test_delete_soft_deactivates(self):
        coupon = self.make_coupon("GONE")
        self.auth_as("admin", "admin123")

        response = self.client.delete(f"/api/v1/coupons/{coupon.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["is_active"])
        self.assertTrue(Coupon.objects.filter(pk=coupon.pk, is_active=False).exists())

    def test_status_filter(self):
        self.make_coupon("ACTIVE1")
        self.make_coupon("OFF1", is_active=False)
        self.make_coupon(
            "OLD1",
            valid_from=timezone.now() - timedelta(days=10),
            valid_to=timezone.now() - timedelta(days=5),
        )
        self.auth_as("admin", "admin123")

        def codes(status_value):
            response = self.client.get("/api/v1/coupons/", {"status": status_value})
            self.assertEqual(response.status_code, 200)
            return {row["code"] for row in response.data["results"]}

        self.assertEqual(codes("active"), {"ACTIVE1"})
        self.assertEqual(codes("inactive"), {"OFF1"})
        self.assertEqual(codes("expired"), {"OLD1"})

    def test_stats_reports_usage(self):
        coupon = self.make_coupon("STATS", max_total_uses=10, max_uses_per_user=3)
        for suffix in ("S1", "S2"):
            case, payment = make_settled_case(self.user_a, self.service, suffix)
            record_usage(coupon=coupon, user=self.user_a, case=case, payment=payment, discount_amount=Decimal("200"))
        self.auth_as("admin", "admin123")

        response = self.client.get(f"/api/v1/coupons/{coupon.id}/stats/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_uses"], 2)
        self.assertEqual(response.data["remaining_uses"], 8)
        self.assertEqual(response.data["unique_users_count"], 1)
        self.assertEqual(Decimal(response.data["total_discount_given"]), Decimal("400.00"))
        self.assertEqual(len(response.data["recent_usage"]), 2)

    def test_only_admin_manages_coupons(self):
        self.auth_as("employee", "employee123")
        response = self.client.get("/api/v1/coupons/")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "permission_denied")

    def test_preview_unknown_code(self):
        self.auth_as("user_a", "user123")
        response = self.client.post(
            "/api/v1/coupons/validate/",
            {"code": "nothing", "service_id": str(self.service.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["detail"], "Invalid coupon code")

    def test_preview_valid_coupon_returns_discount(self):
        self.make_coupon("SAVE20")
        self.auth_as("user_a", "user123")
        response = self.client.post(
            "/api/v1/coupons/validate/",
            {"code": "save20", "service_id": str(self.service.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["valid"])
        self.assertEqual(response.data["coupon"]["code"], "SAVE20")
        self.assertEqual(response.data["discount"]["discount_amount"], "200.00")
        self.assertEqual(response.data["discount"]["final_amount"], "800.00")

    def test_end_user_previews_only_for_themselves(self):
        self.make_coupon("SAVE20")
        body = {"code": "SAVE20", "service_id": str(self.service.id)}

        self.auth_as("user_a", "user123")
        other = self.client.post("/api/v1/coupons/validate/", {**body, "end_user_id": self.user_b.id}, format="json")
        self.assertEqual(other.status_code, 403)
        self.assertEqual(other.data["code"], "forbidden")
        own = self.client.post("/api/v1/coupons/validate/", {**body, "end_user_id": self.user_a.id}, format="json")
        self.assertEqual(own.status_code, 200)

        self.auth_as("employee", "employee123")
        on_behalf = self.client.post("/api/v1/coupons/validate/", {**body, "end_user_id": self.user_b.id}, format="json")
        self.assertEqual(on_behalf.status_code, 200)
        self.assertTrue(on_behalf.data["valid"])

    def test_preview_reports_exhausted_coupon_to_second_user(self):
        self.make_coupon("ONCE", max_total_uses=1)

        self.auth_as("user_a", "user123")
        quote = self.client.post(
            "/api/v1/enrollment/create/",
            {"service_id": str(self.service.id), "payment_method": "test_payment", "coupon_code": "once"},
            format="json",
        )
        self.assertEqual(quote.status_code, 200)
        committed = self.client.post(
            "/api/v1/payment/verify-enrollment/",
            {"razorpay_order_id": quote.data["order"]["id"]},
            format="json",
        )
        self.assertEqual(committed.status_code, 201)

        self.auth_as("user_b", "user123")
        response = self.client.post(
            "/api/v1/coupons/validate/",
            {"code": "ONCE", "service_id": str(self.service.id)},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data["valid"])
        self.assertEqual(response.data["reason"], "Coupon usage limit reached")
