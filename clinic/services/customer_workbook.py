"""Helpers for exporting and importing customer Excel workbooks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Dict, Iterable, List, Sequence, Tuple

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils.dateparse import parse_date
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from clinic.models import Customer, Tenant

COLUMN_DEFINITIONS: Sequence[Tuple[str, str]] = [
    ('email', 'Email'),
    ('first_name', 'First Name'),
    ('last_name', 'Last Name'),
    ('date_of_birth', 'Date of Birth'),
    ('phone', 'Phone'),
    ('address_line1', 'Address Line 1'),
    ('address_line2', 'Address Line 2'),
    ('city', 'City'),
    ('state', 'State'),
    ('postal_code', 'Postal Code'),
    ('country', 'Country'),
    ('insurance_provider', 'Insurance Provider'),
    ('insurance_policy_number', 'Insurance Policy Number'),
    ('notes', 'Notes'),
]

TEXT_LIMITS: Dict[str, int] = {
    field_name: Customer._meta.get_field(field_name).max_length
    for field_name, _ in COLUMN_DEFINITIONS
    if getattr(Customer._meta.get_field(field_name), 'max_length', None)
}


class CustomerWorkbookError(Exception):
    """Raised when workbook import/export fails."""


@dataclass
class WorkbookImportResult:
    created: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)


def export_customers_workbook(customers: Iterable[Customer]) -> BytesIO:
    """Return a BytesIO containing the workbook for the provided customers."""

    wb = Workbook()
    ws = wb.active
    ws.title = 'Customers'
    ws.append([label for _, label in COLUMN_DEFINITIONS])
    for customer in customers:
        row = []
        for column, _ in COLUMN_DEFINITIONS:
            value = getattr(customer, column)
            if column == 'date_of_birth':
                row.append(value.isoformat() if value else '')
            else:
                row.append(value or '')
        ws.append(row)
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def _clean_email(value: object) -> str:
    email = str(value or '').strip().lower()
    if email:
        validate_email(email)
    return email


def _clean_date(value: object):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value).strip())
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError('Invalid date')
    return parsed


def _clean_text(column: str, value: object) -> str:
    text = '' if value is None else str(value).strip()
    limit = TEXT_LIMITS.get(column)
    if limit and len(text) > limit:
        raise ValidationError(f'{column} is longer than {limit} characters')
    return text


def import_customers_workbook(workbook_file, *, tenant: Tenant) -> WorkbookImportResult:
    """Create or update customers of ``tenant`` from the uploaded workbook.

    Rows with an email matching an existing customer of the tenant update
    that customer; all other rows create new customers.  Invalid rows are
    reported in ``errors`` and skipped.
    """

    result = WorkbookImportResult()
    try:
        wb = load_workbook(workbook_file, data_only=True)
    except (InvalidFileException, OSError, KeyError, ValueError) as exc:
        raise CustomerWorkbookError('Unable to read the uploaded workbook.') from exc

    ws = wb.active
    rows = list(ws.iter_rows(values_only=True))
    if not rows:
        raise CustomerWorkbookError('The workbook is empty.')
    header = [str(value).strip() if value is not None else '' for value in rows[0]]
    expected_header = [label for _, label in COLUMN_DEFINITIONS]
    if header[: len(expected_header)] != expected_header:
        raise CustomerWorkbookError('The workbook headers do not match the expected template.')

    pending: List[Dict[str, object]] = []
    for row_index, row in enumerate(rows[1:], start=2):
        if row is None or not any(value not in (None, '') for value in row):
            continue
        values = list(row) + [None] * (len(COLUMN_DEFINITIONS) - len(row))
        payload: Dict[str, object] = {}
        try:
            for idx, (column, _) in enumerate(COLUMN_DEFINITIONS):
                raw = values[idx]
                if column == 'email':
                    payload[column] = _clean_email(raw)
                elif column == 'date_of_birth':
                    payload[column] = _clean_date(raw)
                else:
                    payload[column] = _clean_text(column, raw)
        except ValidationError as exc:
            result.errors.append(f'Row {row_index}: {"; ".join(exc.messages)}.')
            continue
        if not (payload['first_name'] or payload['last_name']):
            result.errors.append(f'Row {row_index}: a first or last name is required.')
            continue
        pending.append(payload)

    if not pending:
        if result.errors:
            raise CustomerWorkbookError('No valid rows were found in the workbook.')
        raise CustomerWorkbookError('The workbook does not include any customers.')

    with transaction.atomic():
        existing = {
            customer.email.lower(): customer
            for customer in Customer.objects.filter(tenant=tenant).exclude(email='')
        }
        for payload in pending:
            email = payload['email']
            customer = existing.get(email) if email else None
            if customer is None:
                customer = Customer.objects.create(tenant=tenant, **payload)
                if email:
                    existing[email] = customer
                result.created += 1
            else:
                for key, value in payload.items():
                    setattr(customer, key, value)
                customer.save()
                result.updated += 1
    return result
