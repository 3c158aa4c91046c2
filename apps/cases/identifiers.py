"""Human-readable identifiers for cases, transactions and invoices.

The numeric sequence inside a case id is derived from a row count and is
presentation only. Uniqueness comes from the millisecond timestamp plus the
random suffix, backed by the unique constraints on the columns that store them.
"""
import time

from django.utils import timezone
from django.utils.crypto import get_random_string

from apps.cases.models import Case

SUFFIX_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

CASH_PREFIX = "CASH"
ADMIN_PREFIX = "ADMIN"
EMPLOYEE_PREFIX = "EMP"
TEST_PREFIX = "TEST"


def epoch_millis():
    return int(time.time() * 1000)


def random_suffix(length=3):
    return get_random_string(length, allowed_chars=SUFFIX_CHARS)


def generate_case_id():
    sequence = Case.objects.count() + 1
    return f"CASE-{epoch_millis()}-{sequence:04d}-{random_suffix()}"


def generate_transaction_id(prefix):
    return f"{prefix}-{epoch_millis()}-{random_suffix()}-{random_suffix(6)}"


def generate_invoice_number(now=None):
    now = timezone.localtime(now or timezone.now())
    return f"INV-{now:%Y%m}-{epoch_millis()}-{random_suffix()}"
