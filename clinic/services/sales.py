"""Point of sale: totals, tax rates and atomic sale recording."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from django.contrib.auth.models import User
from django.db import transaction
from django.utils import timezone

from clinic.models import (
    Customer,
    InventoryItem,
    Payment,
    Prescription,
    SalesOrder,
    SalesOrderItem,
    TaxRate,
    Tenant,
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


class SaleError(Exception):
    """Raised when a sale cannot be recorded."""


class InsufficientStockError(SaleError):
    """Raised when a stock row holds fewer units than requested."""


def money(value) -> Decimal:
    """Coerce ``value`` to a two decimal :class:`Decimal`."""

    if value in (None, ''):
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise SaleError(f'Invalid amount: {value!r}') from exc
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class SaleLine:
    inventory_item_id: int
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    discount_amount: Decimal = ZERO
    prescription_id: Optional[int] = None


@dataclass
class SaleTotals:
    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    final: Decimal = ZERO
    line_totals: List[Decimal] = field(default_factory=list)


def line_total(quantity: int, unit_price, discount=ZERO) -> Decimal:
    total = money(unit_price) * int(quantity) - money(discount)
    return max(total, ZERO).quantize(CENT)


def compute_totals(
    lines: Sequence[tuple],
    discount=ZERO,
    tax_rate: Optional[TaxRate] = None,
) -> SaleTotals:
    """Compute sale totals.

    ``lines`` holds ``(quantity, unit_price, line_discount)`` tuples.  Tax is
    applied to the subtotal (the sum of line totals) and the final amount
    never goes below zero.
    """

    totals = SaleTotals(discount=money(discount))
    for quantity, unit_price, line_discount in lines:
        amount = line_total(quantity, unit_price, line_discount)
        totals.line_totals.append(amount)
        totals.subtotal += amount
    rate = tax_rate.rate if tax_rate is not None else Decimal('0')
    totals.tax = (totals.subtotal * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    totals.final = max(totals.subtotal - totals.discount + totals.tax, ZERO).quantize(CENT)
    return totals


def default_tax_rate(tenant: Tenant) -> Optional[TaxRate]:
    return TaxRate.objects.filter(tenant=tenant, is_default=True).order_by('pk').first()


def set_default_tax_rate(tax_rate: TaxRate) -> None:
    """Mark ``tax_rate`` as the tenant default, clearing any other default."""

    with transaction.atomic():
        (
            TaxRate.objects.filter(tenant_id=tax_rate.tenant_id, is_default=True)
            .exclude(pk=tax_rate.pk)
            .update(is_default=False)
        )
        if not tax_rate.is_default:
            tax_rate.is_default = True
            tax_rate.save(update_fields=['is_default', 'updated_at'])


def next_order_number(tenant: Tenant, when=None) -> str:
    """Return the next ``SO-YYYYMMDD-NNNN`` number for the tenant and day."""

    when = timezone.localtime(when or timezone.now())
    prefix = f"SO-{when:%Y%m%d}-"
    existing = SalesOrder.objects.filter(tenant=tenant, order_number__startswith=prefix).values_list(
        'order_number', flat=True
    )
    highest = 0
    for number in existing:
        try:
            highest = max(highest, int(number[len(prefix):]))
        except ValueError:
            continue
    return f"{prefix}{highest + 1:04d}"


def available_stock(tenant: Tenant):
    """Stock rows that can be sold."""

    return (
        InventoryItem.objects.filter(
            tenant=tenant,
            status=InventoryItem.Status.AVAILABLE,
            quantity__gt=0,
        )
        .select_related('product')
        .order_by('product__name', 'pk')
    )


def record_sale(
    tenant: Tenant,
    user: Optional[User],
    lines: Iterable[SaleLine],
    *,
    customer: Optional[Customer] = None,
    discount=ZERO,
    notes: str = '',
    payment_method: str = Payment.Method.CASH,
) -> SalesOrder:
    """Record a completed sale in a single transaction.

    Creates the order, its items and one payment for the final amount, and
    decrements stock.  A stock row that reaches zero is marked ``sold``.
    Any failure (unknown stock row, insufficient quantity) rolls back every
    write made so far.
    """

    lines = list(lines)
    if not lines:
        raise SaleError('Add at least one item to the sale.')
    if customer is not None and customer.tenant_id != tenant.pk:
        raise SaleError('The selected customer belongs to another clinic.')

    with transaction.atomic():
        # Serialises sales per tenant so order numbers are not handed out twice.
        Tenant.objects.select_for_update().get(pk=tenant.pk)
        item_ids = [line.inventory_item_id for line in lines]
        stock = {
            item.pk: item
            for item in InventoryItem.objects.select_for_update()
            .select_related('product')
            .filter(tenant=tenant, pk__in=item_ids)
        }
        requested: dict[int, int] = {}
        priced = []
        for line in lines:
            item = stock.get(line.inventory_item_id)
            if item is None:
                raise SaleError(f'Stock item {line.inventory_item_id} was not found.')
            if line.quantity < 1:
                raise SaleError(f'Quantity for {item.product.name} must be at least 1.')
            requested[item.pk] = requested.get(item.pk, 0) + line.quantity
            if item.status != InventoryItem.Status.AVAILABLE or requested[item.pk] > item.quantity:
                raise InsufficientStockError(
                    f'Not enough stock for {item.product.name}: '
                    f'{item.quantity} available, {requested[item.pk]} requested.'
                )
            unit_price = line.unit_price if line.unit_price is not None else item.product.base_price
            priced.append((line, item, money(unit_price)))

        tax_rate = default_tax_rate(tenant)
        totals = compute_totals(
            [(line.quantity, unit_price, line.discount_amount) for line, _, unit_price in priced],
            discount=discount,
            tax_rate=tax_rate,
        )
        now = timezone.now()
        order = SalesOrder.objects.create(
            tenant=tenant,
            customer=customer,
            user=user,
            order_number=next_order_number(tenant, now),
            order_date=now,
            status=SalesOrder.Status.COMPLETED,
            total_amount=totals.subtotal,
            discount_amount=totals.discount,
            tax_amount=totals.tax,
            tax_rate=tax_rate,
            final_amount=totals.final,
            notes=notes or '',
        )
        for (line, item, unit_price), amount in zip(priced, totals.line_totals):
            prescription = None
            if line.prescription_id:
                prescription = Prescription.objects.filter(tenant=tenant, pk=line.prescription_id).first()
            SalesOrderItem.objects.create(
                tenant=tenant,
                order=order,
                inventory_item=item,
                product=item.product,
                prescription=prescription,
                quantity=line.quantity,
                unit_price=unit_price,
                discount_amount=money(line.discount_amount),
                line_total=amount,
            )
        for item_id, quantity in requested.items():
            item = stock[item_id]
            item.quantity -= quantity
            update_fields = ['quantity', 'updated_at']
            if item.quantity == 0:
                item.status = InventoryItem.Status.SOLD
                update_fields.append('status')
            item.save(update_fields=update_fields)
        Payment.objects.create(
            tenant=tenant,
            order=order,
            amount=totals.final,
            method=payment_method,
            payment_date=now,
        )
    logger.info('Recorded sale %s for tenant %s (%s)', order.order_number, tenant.pk, totals.final)
    return order
