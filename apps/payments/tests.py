import csv
import hashlib
import hmac
import io
from datetime import timedelta
from decimal import Decimal
from unittest import mock

import requests
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, override_settings
from django.utils import timezone
from razorpay.errors import BadRequestError
from rest_framework.test import APITestCase

from apps.cases.models import Case
from apps.catalog.models import Service, ServiceType
from apps.common.exceptions import GatewayError
from apps.payments.gateway import PaymentGateway, to_minor_units
from apps.payments.models import Payment, PaymentMethod, PaymentStatus

User = get_user_model()


@override_settings(
    RAZORPAY_KEY_ID="rzp_test_key",
    RAZORPAY_KEY_SECRET="rzp_test_secret",
    PAYMENT_CURRENCY="INR",
    PAYMENT_GATEWAY_TIMEOUT_SECONDS=7,
)
class PaymentGatewayTests(SimpleTestCase):
    def sign(self, order_id, payment_id, secret="rzp_test_secret"):
        return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()

    def test_minor_units(self):
        self.assertEqual(to_minor_units(Decimal("800")), 80000)
        self.assertEqual(to_minor_units(Decimal("849.99")), 84999)
        self.assertEqual(to_minor_units("0"), 0)

    def test_test_mode_order_is_synthesized_locally(self):
        gateway = PaymentGateway()
        with mock.patch("apps.payments.gateway.razorpay.Client") as client_cls:
            order = gateway.create_order(Decimal("800.00"), test_mode=True, receipt="rcpt_1")

        client_cls.assert_not_called()
        self.assertTrue(order["id"].startswith("order_test_"))
        self.assertEqual(order["amount"], 80000)
        self.assertEqual(order["currency"], "INR")
        self.assertEqual(order["status"], "created")

    def test_live_order_calls_razorpay_with_timeout(self):
        gateway = PaymentGateway()
        gateway._client = mock.Mock()
        gateway.client.order.create.return_value = {
            "id": "order_live_1",
            "amount": 80000,
            "currency": "INR",
            "receipt": "rcpt_1",
            "status": "created",
        }

        order = gateway.create_order(Decimal("800.00"), receipt="rcpt_1")

        self.assertEqual(order["id"], "order_live_1")
        gateway.client.order.create.assert_called_once_with(
            data={"amount": 80000, "currency": "INR", "receipt": "rcpt_1", "payment_capture": 1},
            timeout=7,
        )

    def test_live_order_failures_become_gateway_errors(self):
        gateway = PaymentGateway()
        gateway._client = mock.Mock()
        for failure in (requests.Timeout("slow"), requests.ConnectionError("down"), BadRequestError("bad amount")):
            gateway.client.order.create.side_effect = failure
            with self.assertRaises(GatewayError) as raised:
                gateway.create_order(Decimal("100.00"))
            self.assertEqual(raised.exception.status_code, 502)

    def test_client_uses_configured_keys(self):
        with mock.patch("apps.payments.gateway.razorpay.Client") as client_cls:
            PaymentGateway().client
        client_cls.assert_called_once_with(auth=("rzp_test_key", "rzp_test_secret"))

    def test_signature_verification(self):
        gateway = PaymentGateway()
        signature = self.sign("order_1", "pay_1")

        self.assertTrue(gateway.verify_payment(order_id="order_1", payment_id="pay_1", signature=signature))
        self.assertFalse(gateway.verify_payment(order_id="order_1", payment_id="pay_2", signature=signature))
        self.assertFalse(
            gateway.verify_payment(order_id="order_1", payment_id="pay_1", signature=self.sign("order_1", "pay_1", "other"))
        )
        self.assertFalse(gateway.verify_payment(order_id="order_1", payment_id=None, signature=None))

    def test_test_mode_verification_always_passes(self):
        self.assertTrue(
            PaymentGateway().verify_payment(order_id="order_test_1", payment_id=None, signature="tampered", test_mode=True)
        )


class PaymentHistoryTests(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin", password="admin123", role="admin")
        self.employee = User.objects.create_user(username="employee", password="employee123", role="employee")
        self.other_employee = User.objects.create_user(username="employee2", password="employee123", role="employee")
        self.agent = User.objects.create_user(username="agent", password="agent123", role="agent")
        self.alice = User.objects.create_user(
            username="alice",
            password="alice123",
            role="end_user",
            first_name="Alice",
            last_name="Rao",
            email="alice@example.com",
            agent=self.agent,
        )
        self.bob = User.objects.create_user(username="bob", password="bob123", role="end_user", email="bob@example.com")
        self.service = Service.objects.create(name="GST Registration", type=ServiceType.GST_REGISTRATION, price=Decimal("1000.00"))

        self.alice_payment = self.make_payment(
            "ALICE",
            end_user=self.alice,
            enrolled_by=self.alice,
            employee=self.employee,
            amount=Decimal("800.00"),
            discount=Decimal("200.00"),
            coupon_code="SAVE20",
            method=PaymentMethod.TEST_PAYMENT,
        )
        self.bob_payment = self.make_payment(
            "BOB",
            end_user=self.bob,
            enrolled_by=self.other_employee,
            employee=self.other_employee,
            amount=Decimal("1000.00"),
            method=PaymentMethod.CASH,
        )
        self.failed_payment = self.make_payment(
            "FAILED",
            end_user=self.bob,
            enrolled_by=self.bob,
            amount=Decimal("1000.00"),
            status=PaymentStatus.FAILED,
            method=PaymentMethod.RAZORPAY,
        )

    def make_payment(
        self,
        suffix,
        *,
        end_user,
        enrolled_by,
        amount,
        employee=None,
        discount=Decimal("0.00"),
        coupon_code="",
        status=PaymentStatus.COMPLETED,
        method=PaymentMethod.CASH,
    ):
        case = Case.objects.create(
            case_id=f"CASE-1700000000000-0001-{suffix}",
            end_user=end_user,
            service=self.service,
            employee=employee,
            enrolled_by=enrolled_by,
        )
        return Payment.objects.create(
            case=case,
            end_user=end_user,
            service=self.service,
            amount=amount,
            original_amount=amount + discount,
            discount_amount=discount,
            coupon_code=coupon_code,
            transaction_id=f"TXN-{suffix}",
            payment_method=method,
            status=status,
            enrolled_by=enrolled_by,
            cash_receipt_number="RCP-9" if method == PaymentMethod.CASH else "",
        )

    def auth(self, username, password):
        return self.client.post("/api/v1/auth/token/", {"username": username, "password": password}, format="json")

    def auth_as(self, username, password):
        token = self.auth(username, password).data["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    def listed_transactions(self, **params):
        response = self.client.get("/api/v1/payments/", params)
        self.assertEqual(response.status_code, 200)
        return {row["transaction_id"] for row in response.data["results"]}

    def test_invoice_number_generated_on_first_save(self):
        self.assertRegex(self.alice_payment.invoice_number, r"^INV-\d{6}-\d{13}-[A-Z0-9]{3}$")
        invoice = self.alice_payment.invoice_number
        self.alice_payment.cash_notes = "edited"
        self.alice_payment.save()
        self.alice_payment.refresh_from_db()
        self.assertEqual(self.alice_payment.invoice_number, invoice)

    def test_admin_sees_everything(self):
        self.auth_as("admin", "admin123")
        self.assertEqual(self.listed_transactions(), {"TXN-ALICE", "TXN-BOB", "TXN-FAILED"})

    def test_employee_sees_assigned_or_enrolled_cases(self):
        self.auth_as("employee", "employee123")
        self.assertEqual(self.listed_transactions(), {"TXN-ALICE"})
        self.auth_as("employee2", "employee123")
        self.assertEqual(self.listed_transactions(), {"TXN-BOB"})

    def test_agent_sees_onboarded_users(self):
        self.auth_as("agent", "agent123")
        self.assertEqual(self.listed_transactions(), {"TXN-ALICE"})

    def test_end_user_sees_own_payments(self):
        self.auth_as("bob", "bob123")
        self.assertEqual(self.listed_transactions(), {"TXN-BOB", "TXN-FAILED"})

    def test_filters_and_search(self):
        self.auth_as("admin", "admin123")
        self.assertEqual(self.listed_transactions(status="failed"), {"TXN-FAILED"})
        self.assertEqual(self.listed_transactions(payment_method="cash"), {"TXN-BOB"})
        self.assertEqual(self.listed_transactions(q="alice@example"), {"TXN-ALICE"})
        self.assertEqual(self.listed_transactions(q="save20"), {"TXN-ALICE"})
        self.assertEqual(self.listed_transactions(q="0001-BOB"), {"TXN-BOB"})

        today = timezone.localdate()
        self.assertEqual(len(self.listed_transactions(date_from=today.isoformat())), 3)
        self.assertEqual(self.listed_transactions(date_to=(today - timedelta(days=1)).isoformat()), set())

        bad_range = self.client.get(
            "/api/v1/payments/",
            {"date_from": today.isoformat(), "date_to": (today - timedelta(days=1)).isoformat()},
        )
        self.assertEqual(bad_range.status_code, 400)
        self.assertIn("date_from", bad_range.data["fields"])

    def test_analytics_over_completed_payments(self):
        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/payments/analytics/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total_revenue"], Decimal("1800.00"))
        self.assertEqual(response.data["total_discount"], Decimal("200.00"))
        self.assertEqual(response.data["total_payments"], 2)
        self.assertEqual(response.data["enrolled_users_count"], 2)
        self.assertEqual(response.data["average_revenue_per_user"], Decimal("900.00"))
        by_method = {row["payment_method"]: row["transactions"] for row in response.data["by_method"]}
        self.assertEqual(by_method, {"cash": 1, "test_payment": 1})
        by_status = {row["status"]: row["transactions"] for row in response.data["by_status"]}
        self.assertEqual(by_status, {"completed": 2, "failed": 1})
        self.assertEqual(len(response.data["by_day"]), 1)

    def test_analytics_respects_scope(self):
        self.auth_as("alice", "alice123")
        response = self.client.get("/api/v1/payments/analytics/")
        self.assertEqual(response.data["total_revenue"], Decimal("800.00"))
        self.assertEqual(response.data["total_payments"], 1)

    def test_export_csv(self):
        self.auth_as("admin", "admin123")
        response = self.client.get("/api/v1/payments/export/", {"status": "completed"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("attachment;", response["Content-Disposition"])
        rows = list(csv.reader(io.StringIO(response.content.decode())))
        self.assertEqual(rows[0][:3], ["Payment Date", "Invoice Number", "Transaction ID"])
        self.assertEqual({row[2] for row in rows[1:]}, {"TXN-ALICE", "TXN-BOB"})

    def test_receipt_within_scope_only(self):
        self.auth_as("bob", "bob123")
        response = self.client.get(f"/api/v1/payments/{self.bob_payment.id}/receipt/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["invoice_number"], self.bob_payment.invoice_number)
        self.assertEqual(response.data["case"]["case_id"], self.bob_payment.case.case_id)
        self.assertEqual(response.data["amounts"]["amount"], Decimal("1000.00"))
        self.assertEqual(response.data["amounts"]["tax_amount"], Decimal("0.00"))
        self.assertEqual(response.data["cash"]["receipt_number"], "RCP-9")
        self.assertIn("name", response.data["company"])

        hidden = self.client.get(f"/api/v1/payments/{self.alice_payment.id}/receipt/")
        self.assertEqual(hidden.status_code, 404)
        self.assertFalse(hidden.data["success"])

    def test_retrieve_within_scope_only(self):
        self.auth_as("agent", "agent123")
        response = self.client.get(f"/api/v1/payments/{self.alice_payment.id}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["transaction_id"], "TXN-ALICE")
        self.assertEqual(self.client.get(f"/api/v1/payments/{self.bob_payment.id}/").status_code, 404)

    def test_history_requires_authentication(self):
        response = self.client.get("/api/v1/payments/")
        self.assertEqual(response.status_code, 401)
