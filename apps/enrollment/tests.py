import hashlib
import hmac
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APITestCase

from apps.activity.models import ActivityLog
from apps.cases.models import Case, CaseStatus
from apps.catalog.models import Service, ServiceType
from apps.coupons.models import Coupon, CouponUsage
from apps.enrollment.services import complete_verified_enrollment, create_enrollment
from apps.notifications.models import Notification
from apps.payments.models import Payment, PaymentOrder, PaymentOrderStatus

User = get_user_model()

GATEWAY_SECRET = "rzp_test_secret"


def razorpay_signature(order_id, payment_id, secret=GATEWAY_SECRET):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@override_settings(
    RAZORPAY_KEY_ID="rzp_test_key",
    RAZORPAY_KEY_SECRET=GATEWAY_SECRET,
    PAYMENT_TEST_MODE_ENABLED=True,
)
class EnrollmentFlowTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="admin")
        self.employee = User.objects.create_user(username="employee", password="employee123", role="employee")
        self.agent = User.objects.create_user(username="agent", password="agent123", role="agent")
        self.customer = User.objects.create_user(
            username="customer",
            password="customer123",
            role="end_user",
            first_name="Priya",
            agent=self.agent,
        )
        self.trademark = Service.objects.create(
            name="Trademark Registration",
            type=ServiceType.TRADEMARK,
            price=Decimal("5000.00"),
            sla_hours=72,
        )
        self.copyright = Service.objects.create(
            name="Copyright Filing",
            type=ServiceType.COPYRIGHT,
            price=Decimal("1000.00"),
        )
        self.save20 = Coupon.objects.create(
            code="SAVE20",
            discount_percentage=Decimal("20"),
            valid_from=timezone.now() - timedelta(days=1),
            valid_to=timezone.now() + timedelta(days=30),
            max_uses_per_user=1,
            created_by=self.admin,
        )

    def auth(self, username, password):
        return self.client.post("/api/v1/auth/token/", {"username": username, "password": password}, format="json")

    def auth_as(self, username, password):
        token = self.auth(username, password).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def enroll(self, **body):
        return self.client.post("/api/v1/enrollment/create/", body, format="json")

    def verify(self, **body):
        return self.client.post("/api/v1/payment/verify-enrollment/", body, format="json")

    def test_admin_cash_enrollment_commits_everything(self):
        new_user = User.objects.create_user(username="newcomer", password="newcomer123", role="end_user")
        self.auth_as("admin", "admin123")

        response = self.enroll(
            end_user_id=new_user.id,
            service_id=str(self.trademark.id),
            payment_method="cash",
            cash_details={"receipt_number": "RCP-001"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["case"]["status"], CaseStatus.NEW)
        self.assertEqual(response.data["case"]["enrollment_type"], "admin")
        payment = response.data["payment"]
        self.assertEqual(Decimal(payment["amount"]), Decimal("5000"))
        self.assertEqual(Decimal(payment["original_amount"]), Decimal("5000"))
        self.assertEqual(Decimal(payment["discount_amount"]), Decimal("0"))
        self.assertEqual(payment["payment_method"], "cash")
        self.assertEqual(payment["status"], "completed")
        self.assertEqual(payment["cash_payment_details"]["receipt_number"], "RCP-001")
        self.assertEqual(payment["cash_payment_details"]["notes"], "Cash payment received")
        self.assertTrue(payment["transaction_id"].startswith("ADMIN-"))
        self.assertTrue(payment["invoice_number"].startswith("INV-"))
        self.assertEqual(payment["initiated_from"], "admin_panel")
        self.assertEqual(response.data["service"]["name"], "Trademark Registration")

        case = Case.objects.get(end_user=new_user)
        self.assertEqual(case.enrolled_by, self.admin)
        self.assertEqual(case.deadline - case.enrolled_at, timedelta(hours=72))
        self.assertEqual(Notification.objects.filter(recipient=new_user).count(), 1)
        self.assertFalse(Notification.objects.filter(recipient=self.admin).exists())
        self.assertTrue(ActivityLog.objects.filter(action="enrollment.commit", case=case).exists())

    def test_employee_cash_enrollment_notifies_admins(self):
        self.auth_as("employee", "employee123")
        response = self.enroll(
            end_user_id=self.customer.id,
            service_id=str(self.copyright.id),
            payment_method="cash",
            cash_details={"notes": "Paid at front desk"},
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.data["payment"]["transaction_id"].startswith("EMP-"))
        self.assertEqual(response.data["payment"]["cash_payment_details"]["notes"], "Paid at front desk")
        admin_note = Notification.objects.get(recipient=self.admin)
        self.assertEqual(admin_note.title, "New Cash Enrollment")
        self.assertIn(response.data["case"]["case_id"], admin_note.message)
        case = Case.objects.get(end_user=self.customer)
        self.assertEqual(case.deadline - case.enrolled_at, timedelta(hours=24))

    def test_cash_enrollment_applies_coupon_once(self):
        self.auth_as("admin", "admin123")
        response = self.enroll(
            end_user_id=self.customer.id,
            service_id=str(self.copyright.id),
            payment_method="cash",
            coupon_code="save20",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["payment"]["amount"]), Decimal("800"))
        self.assertEqual(response.data["payment"]["coupon_code"], "SAVE20")
        self.save20.refresh_from_db()
        self.assertEqual(self.save20.current_uses, 1)
        usage = CouponUsage.objects.get(coupon=self.save20)
        self.assertEqual(usage.user, self.customer)
        self.assertEqual(str(usage.payment_id), response.data["payment"]["id"])

    def test_self_enrollment_with_coupon_via_test_payment(self):
        self.auth_as("customer", "customer123")
        quote = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="SAVE20")

        self.assertEqual(quote.status_code, 200)
        self.assertTrue(quote.data["requires_payment_verification"])
        self.assertEqual(quote.data["order"]["amount"], 80000)
        self.assertTrue(quote.data["order"]["id"].startswith("order_test_"))
        self.assertEqual(quote.data["discount"]["discount_amount"], "200.00")
        self.assertEqual(quote.data["coupon"]["code"], "SAVE20")
        self.assertEqual(quote.data["end_user_id"], self.customer.id)
        self.assertEqual(quote.data["enroller_role"], "end_user")
        self.assertFalse(Case.objects.exists())
        self.assertFalse(Payment.objects.exists())

        committed = self.verify(razorpay_order_id=quote.data["order"]["id"])

        self.assertEqual(committed.status_code, 201)
        payment = committed.data["payment"]
        self.assertEqual(Decimal(payment["amount"]), Decimal("800"))
        self.assertEqual(Decimal(payment["discount_amount"]), Decimal("200"))
        self.assertEqual(payment["coupon_code"], "SAVE20")
        self.assertEqual(payment["payment_method"], "test_payment")
        self.assertTrue(payment["transaction_id"].startswith("TEST-"))
        self.assertEqual(committed.data["case"]["enrollment_type"], "self")
        self.save20.refresh_from_db()
        self.assertEqual(self.save20.current_uses, 1)
        self.assertEqual(self.save20.usage_history.count(), 1)
        self.assertEqual(
            set(Notification.objects.values_list("recipient__username", "title")),
            {("admin", "New Case Created"), ("customer", "Service Enrollment")},
        )

    def test_agent_cannot_take_cash(self):
        self.auth_as("agent", "agent123")
        response = self.enroll(
            end_user_id=self.customer.id,
            service_id=str(self.trademark.id),
            payment_method="cash",
        )

        self.assertEqual(response.status_code, 403)
        self.assertFalse(response.data["success"])
        self.assertEqual(response.data["code"], "forbidden")
        self.assertFalse(Case.objects.exists())
        self.assertFalse(Payment.objects.exists())

    def test_cash_gate_is_checked_before_user_lookup(self):
        self.auth_as("agent", "agent123")
        response = self.enroll(end_user_id=999999, service_id=str(self.trademark.id), payment_method="cash")
        self.assertEqual(response.status_code, 403)

    def test_second_use_of_coupon_falls_back_to_full_price(self):
        self.auth_as("customer", "customer123")
        first = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="SAVE20")
        self.assertEqual(self.verify(razorpay_order_id=first.data["order"]["id"]).status_code, 201)

        second = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="SAVE20")
        self.assertEqual(second.status_code, 200)
        self.assertIsNone(second.data["discount"])
        self.assertIsNone(second.data["coupon"])
        self.assertEqual(second.data["order"]["amount"], 100000)

        committed = self.verify(razorpay_order_id=second.data["order"]["id"])
        self.assertEqual(committed.status_code, 201)
        self.assertEqual(Decimal(committed.data["payment"]["discount_amount"]), Decimal("0"))
        self.assertEqual(Decimal(committed.data["payment"]["amount"]), Decimal("1000"))
        self.save20.refresh_from_db()
        self.assertEqual(self.save20.current_uses, 1)

    def make_single_use_coupon(self):
        return Coupon.objects.create(
            code="ONCE",
            discount_percentage=Decimal("20"),
            valid_from=timezone.now() - timedelta(days=1),
            valid_to=timezone.now() + timedelta(days=30),
            max_total_uses=1,
            max_uses_per_user=1,
            created_by=self.admin,
        )

    def test_open_quote_reserves_single_use_coupon(self):
        once = self.make_single_use_coupon()
        self.auth_as("customer", "customer123")

        first = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="ONCE")
        second = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="ONCE")
        self.assertEqual(first.data["order"]["amount"], 80000)
        self.assertEqual(second.data["order"]["amount"], 100000)
        self.assertIsNone(second.data["coupon"])

        amounts = [
            Decimal(self.verify(razorpay_order_id=quote.data["order"]["id"]).data["payment"]["amount"])
            for quote in (first, second)
        ]

        self.assertEqual(amounts, [Decimal("800"), Decimal("1000")])
        once.refresh_from_db()
        self.assertEqual(once.current_uses, 1)
        self.assertEqual(CouponUsage.objects.filter(coupon=once, user=self.customer).count(), 1)

    def test_open_quote_keeps_coupon_from_cash_enrollment(self):
        self.make_single_use_coupon()
        self.auth_as("customer", "customer123")
        self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="ONCE")

        self.auth_as("admin", "admin123")
        response = self.enroll(
            end_user_id=self.agent.id,
            service_id=str(self.copyright.id),
            payment_method="cash",
            coupon_code="ONCE",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["payment"]["discount_amount"]), Decimal("0"))

    def test_stale_test_quote_commits_at_full_price_once_coupon_is_used_up(self):
        once = self.make_single_use_coupon()
        self.auth_as("customer", "customer123")
        stale = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="ONCE")
        PaymentOrder.objects.update(created_at=timezone.now() - timedelta(hours=2))
        fresh = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code="ONCE")
        self.assertEqual(fresh.data["order"]["amount"], 80000)

        self.assertEqual(self.verify(razorpay_order_id=fresh.data["order"]["id"]).status_code, 201)
        late = self.verify(razorpay_order_id=stale.data["order"]["id"])

        self.assertEqual(late.status_code, 201)
        self.assertEqual(Decimal(late.data["payment"]["amount"]), Decimal("1000"))
        self.assertEqual(Decimal(late.data["payment"]["discount_amount"]), Decimal("0"))
        self.assertEqual(late.data["payment"]["coupon_code"], "")
        once.refresh_from_db()
        self.assertEqual(once.current_uses, 1)

    def test_stale_live_quote_is_refused_once_coupon_is_used_up(self):
        once = self.make_single_use_coupon()
        self.auth_as("customer", "customer123")
        with mock.patch("apps.payments.gateway.razorpay.Client") as client_cls:
            for order_id in ("order_live_a", "order_live_b"):
                client_cls.return_value.order.create.return_value = {
                    "id": order_id,
                    "amount": 400000,
                    "currency": "INR",
                    "receipt": "rcpt_1",
                    "status": "created",
                }
                quote = self.enroll(service_id=str(self.trademark.id), payment_method="razorpay", coupon_code="ONCE")
                self.assertEqual(quote.data["coupon"]["code"], "ONCE")
                PaymentOrder.objects.update(created_at=timezone.now() - timedelta(hours=2))

        first = self.verify(
            razorpay_order_id="order_live_a",
            razorpay_payment_id="pay_live_a",
            razorpay_signature=razorpay_signature("order_live_a", "pay_live_a"),
        )
        second = self.verify(
            razorpay_order_id="order_live_b",
            razorpay_payment_id="pay_live_b",
            razorpay_signature=razorpay_signature("order_live_b", "pay_live_b"),
        )

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 400)
        self.assertEqual(second.data["code"], "invalid_state")
        self.assertEqual(PaymentOrder.objects.get(gateway_order_id="order_live_b").status, PaymentOrderStatus.CREATED)
        self.assertEqual(Payment.objects.count(), 1)
        once.refresh_from_db()
        self.assertEqual(once.current_uses, 1)

    def test_commit_uses_the_policy_of_the_role_that_quoted(self):
        self.auth_as("employee", "employee123")
        quote = self.enroll(end_user_id=self.customer.id, service_id=str(self.copyright.id), payment_method="test_payment")
        self.employee.role = "agent"
        self.employee.save()

        response = self.verify(razorpay_order_id=quote.data["order"]["id"])

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["payment"]["enroller_role"], "employee")
        self.assertEqual(response.data["payment"]["initiated_from"], "employee_panel")
        self.assertEqual(response.data["case"]["enrollment_type"], "employee")

    def test_unknown_or_expired_coupon_is_ignored(self):
        Coupon.objects.create(
            code="OLDIE",
            discount_percentage=Decimal("50"),
            valid_from=timezone.now() - timedelta(days=10),
            valid_to=timezone.now() - timedelta(days=1),
            created_by=self.admin,
        )
        self.auth_as("customer", "customer123")
        for code in ("OLDIE", "NOPE"):
            response = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment", coupon_code=code)
            self.assertEqual(response.status_code, 200)
            self.assertIsNone(response.data["discount"])
            self.assertEqual(response.data["order"]["amount"], 100000)

    def live_quote(self, username, password, **body):
        self.auth_as(username, password)
        with mock.patch("apps.payments.gateway.razorpay.Client") as client_cls:
            client_cls.return_value.order.create.return_value = {
                "id": "order_live_123",
                "amount": 500000,
                "currency": "INR",
                "receipt": "rcpt_1",
                "status": "created",
            }
            response = self.enroll(service_id=str(self.trademark.id), payment_method="razorpay", **body)
        self.assertEqual(response.status_code, 200)
        return response

    def test_tampered_signature_is_rejected(self):
        quote = self.live_quote("customer", "customer123")
        order_id = quote.data["order"]["id"]

        response = self.verify(
            razorpay_order_id=order_id,
            razorpay_payment_id="pay_live_1",
            razorpay_signature=razorpay_signature(order_id, "pay_live_1", secret="forged"),
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["detail"], "Invalid payment")
        self.assertFalse(Case.objects.exists())
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(PaymentOrder.objects.get(gateway_order_id=order_id).status, PaymentOrderStatus.CREATED)

    def test_live_payment_commits_with_gateway_payment_id(self):
        quote = self.live_quote("agent", "agent123", end_user_id=self.customer.id)
        order_id = quote.data["order"]["id"]

        response = self.verify(
            razorpay_order_id=order_id,
            razorpay_payment_id="pay_live_1",
            razorpay_signature=razorpay_signature(order_id, "pay_live_1"),
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["payment"]["transaction_id"], "pay_live_1")
        self.assertEqual(response.data["payment"]["gateway_order_id"], order_id)
        self.assertEqual(response.data["payment"]["initiated_from"], "agent_portal")
        self.assertEqual(response.data["case"]["enrollment_type"], "agent")
        order = PaymentOrder.objects.get(gateway_order_id=order_id)
        self.assertEqual(order.status, PaymentOrderStatus.COMPLETED)
        self.assertEqual(str(order.payment_id), response.data["payment"]["id"])

    def test_replayed_verification_returns_existing_records(self):
        quote = self.live_quote("customer", "customer123")
        order_id = quote.data["order"]["id"]
        body = {
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_live_1",
            "razorpay_signature": razorpay_signature(order_id, "pay_live_1"),
        }

        first = self.verify(**body)
        replay = self.verify(**body)

        self.assertEqual(first.status_code, 201)
        self.assertEqual(replay.status_code, 200)
        self.assertEqual(replay.data["case"]["case_id"], first.data["case"]["case_id"])
        self.assertEqual(Case.objects.count(), 1)
        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(Notification.objects.filter(recipient=self.customer).count(), 1)

        other = self.verify(
            razorpay_order_id=order_id,
            razorpay_payment_id="pay_live_2",
            razorpay_signature=razorpay_signature(order_id, "pay_live_2"),
        )
        self.assertEqual(other.status_code, 400)
        self.assertEqual(other.data["code"], "invalid_state")
        self.assertEqual(Case.objects.count(), 1)

    def test_only_the_enroller_can_complete_an_order(self):
        self.auth_as("customer", "customer123")
        quote = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment")

        self.auth_as("agent", "agent123")
        response = self.verify(razorpay_order_id=quote.data["order"]["id"])

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Case.objects.exists())

    def test_unknown_order_is_not_found(self):
        self.auth_as("customer", "customer123")
        response = self.verify(razorpay_order_id="order_missing")
        self.assertEqual(response.status_code, 404)

    def test_duplicate_gateway_payment_id_is_a_conflict(self):
        quote = self.live_quote("customer", "customer123")
        order_id = quote.data["order"]["id"]
        existing_case = Case.objects.create(case_id="CASE-EXISTING", end_user=self.customer, service=self.trademark)
        Payment.objects.create(
            case=existing_case,
            end_user=self.customer,
            service=self.trademark,
            amount=Decimal("5000.00"),
            original_amount=Decimal("5000.00"),
            transaction_id="pay_live_dup",
            payment_method="razorpay",
            status="completed",
        )

        response = self.verify(
            razorpay_order_id=order_id,
            razorpay_payment_id="pay_live_dup",
            razorpay_signature=razorpay_signature(order_id, "pay_live_dup"),
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "duplicate_key")
        self.assertEqual(Case.objects.count(), 1)
        self.assertEqual(PaymentOrder.objects.get(gateway_order_id=order_id).status, PaymentOrderStatus.CREATED)

    def test_missing_user_and_inactive_service(self):
        self.auth_as("admin", "admin123")
        missing = self.enroll(end_user_id=999999, service_id=str(self.trademark.id), payment_method="test_payment")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.data["detail"], "User not found")

        self.copyright.is_active = False
        self.copyright.save()
        inactive = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment")
        self.assertEqual(inactive.status_code, 400)
        self.assertEqual(inactive.data["detail"], "Service is not active")

    def test_payment_methods_follow_capabilities(self):
        self.auth_as("admin", "admin123")
        admin_methods = [row["value"] for row in self.client.get("/api/v1/enrollment/payment-methods/").data]
        self.assertEqual(admin_methods, ["razorpay", "cash", "test_payment"])

        self.auth_as("agent", "agent123")
        agent_methods = [row["value"] for row in self.client.get("/api/v1/enrollment/payment-methods/").data]
        self.assertEqual(agent_methods, ["razorpay", "test_payment"])

    @override_settings(PAYMENT_TEST_MODE_ENABLED=False)
    def test_disabled_test_mode_hides_and_rejects_test_payments(self):
        self.auth_as("customer", "customer123")
        methods = [row["value"] for row in self.client.get("/api/v1/enrollment/payment-methods/").data]
        self.assertEqual(methods, ["razorpay"])

        response = self.enroll(service_id=str(self.copyright.id), payment_method="test_payment")
        self.assertEqual(response.status_code, 403)
        self.assertFalse(PaymentOrder.objects.exists())

    def test_create_order_alias_returns_quote(self):
        self.auth_as("customer", "customer123")
        response = self.client.post(
            "/api/v1/payment/create-order/",
            {"service_id": str(self.copyright.id), "is_test_mode": True, "coupon_code": "SAVE20"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["order"]["test_mode"])
        self.assertEqual(response.data["order"]["amount"], 80000)
        order = PaymentOrder.objects.get(gateway_order_id=response.data["order"]["id"])
        self.assertEqual(order.payment_method, "razorpay")
        self.assertEqual(order.coupon, self.save20)


class EnrollmentAtomicityTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="admin")
        self.employee = User.objects.create_user(username="employee", password="employee123", role="employee")
        self.customer = User.objects.create_user(username="customer", password="customer123", role="end_user")
        self.service = Service.objects.create(name="Patent Search", type=ServiceType.PATENT, price=Decimal("2500.00"))
        self.coupon = Coupon.objects.create(
            code="HALF",
            discount_percentage=Decimal("50"),
            valid_from=timezone.now() - timedelta(days=1),
            valid_to=timezone.now() + timedelta(days=1),
            created_by=self.admin,
        )

    def assert_nothing_committed(self):
        self.assertFalse(Case.objects.exists())
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(CouponUsage.objects.exists())
        self.assertFalse(Notification.objects.exists())
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 0)

    def test_cash_commit_rolls_back_when_notification_fails(self):
        with mock.patch("apps.enrollment.services.notify", side_effect=RuntimeError("notification store down")):
            with self.assertRaises(RuntimeError):
                create_enrollment(
                    enroller=self.employee,
                    end_user_id=self.customer.id,
                    service_id=self.service.id,
                    payment_method="cash",
                    coupon_code="HALF",
                )
        self.assert_nothing_committed()

    def test_admin_fan_out_failure_rolls_back_cash_commit(self):
        with mock.patch("apps.enrollment.services.notify_all", side_effect=RuntimeError("fan-out failed")):
            with self.assertRaises(RuntimeError):
                create_enrollment(
                    enroller=self.employee,
                    end_user_id=self.customer.id,
                    service_id=self.service.id,
                    payment_method="cash",
                    coupon_code="HALF",
                )
        self.assert_nothing_committed()

    def test_api_reports_generic_error_and_leaves_no_records(self):
        token = self.client.post(
            "/api/v1/auth/token/", {"username": "admin", "password": "admin123"}, format="json"
        ).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        with mock.patch("apps.enrollment.services.notify", side_effect=RuntimeError("secret internals")):
            response = self.client.post(
                "/api/v1/enrollment/create/",
                {
                    "end_user_id": self.customer.id,
                    "service_id": str(self.service.id),
                    "payment_method": "cash",
                    "coupon_code": "HALF",
                },
                format="json",
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["code"], "server_error")
        self.assertNotIn("secret internals", response.data["detail"])
        self.assert_nothing_committed()

    def test_gateway_commit_rolls_back_when_notification_fails(self):
        order = create_enrollment(
            enroller=self.customer,
            service_id=self.service.id,
            payment_method="test_payment",
            coupon_code="HALF",
        )
        self.assertEqual(order.final_amount, Decimal("1250.00"))

        with mock.patch("apps.enrollment.services.notify", side_effect=RuntimeError("notification store down")):
            with self.assertRaises(RuntimeError):
                complete_verified_enrollment(enroller=self.customer, gateway_order_id=order.gateway_order_id)

        self.assert_nothing_committed()
        order.refresh_from_db()
        self.assertEqual(order.status, PaymentOrderStatus.CREATED)

        result = complete_verified_enrollment(enroller=self.customer, gateway_order_id=order.gateway_order_id)
        self.assertTrue(result.created)
        self.assertEqual(result.payment.amount, Decimal("1250.00"))
        self.coupon.refresh_from_db()
        self.assertEqual(self.coupon.current_uses, 1)
