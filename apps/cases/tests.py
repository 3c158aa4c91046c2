from datetime import datetime
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from apps.cases.identifiers import (
    CASH_PREFIX,
    TEST_PREFIX,
    generate_case_id,
    generate_invoice_number,
    generate_transaction_id,
)
from apps.cases.models import Case
from apps.catalog.models import Service, ServiceType

User = get_user_model()


class IdentifierTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="customer", password="customer123")
        self.service = Service.objects.create(name="Company Registration", type=ServiceType.COMPANY_REGISTRATION, price=Decimal("9000.00"))

    def test_case_id_format_and_sequence(self):
        self.assertRegex(generate_case_id(), r"^CASE-\d{13}-0001-[A-Z0-9]{3}$")
        Case.objects.create(case_id="CASE-1-0001-AAA", end_user=self.user, service=self.service)
        self.assertRegex(generate_case_id(), r"^CASE-\d{13}-0002-[A-Z0-9]{3}$")

    def test_case_ids_differ_within_the_same_millisecond(self):
        with mock.patch("apps.cases.identifiers.epoch_millis", return_value=1700000000000):
            ids = {generate_case_id() for _ in range(20)}
        self.assertGreater(len(ids), 1)

    def test_transaction_id_format(self):
        self.assertRegex(generate_transaction_id(CASH_PREFIX), r"^CASH-\d{13}-[A-Z0-9]{3}-[A-Z0-9]{6}$")
        self.assertRegex(generate_transaction_id(TEST_PREFIX), r"^TEST-\d{13}-[A-Z0-9]{3}-[A-Z0-9]{6}$")

    def test_invoice_number_uses_local_year_month(self):
        moment = timezone.make_aware(datetime(2026, 3, 15, 12, 0))
        self.assertRegex(generate_invoice_number(moment), r"^INV-202603-\d{13}-[A-Z0-9]{3}$")
