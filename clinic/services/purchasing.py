"""Purchase order creation, updates and receiving."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from clinic.models import InventoryItem, Product, PurchaseOrder, PurchaseOrderItem, Supplier, Tenant
from clinic.services.sales import SaleError, money

logger = logging.getLogger(__name__)


class PurchaseOrderError(Exception):
    """Raised when a purchase order payload is invalid or cannot be processed."""


@dataclass
class OrderLine:
    product_id: Optional[int]
    quantity_ordered: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity_ordered)


def _coerce_date(value: Any, field_name: str, *, required: bool = False) -> Optional[date]:
    if value in (None, ''):
        if required:
            raise PurchaseOrderError(f'{field_name} is required.')
        return None
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise PurchaseOrderError(f'{field_name} must be a date in YYYY-MM-DD format.')
    return parsed


def parse_lines(raw_items: Any) -> List[OrderLine]:
    """Validate the ``items`` array of a purchase order payload."""

    if not isinstance(raw_items, list) or not raw_items:
        raise PurchaseOrderError('At least one line item is required.')
    lines: List[OrderLine] = []
    for index, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            raise PurchaseOrderError(f'Item {index} must be an object.')
        try:
            quantity = int(raw.get('quantity_ordered') or 0)
        except (TypeError, ValueError):
            raise PurchaseOrderError(f'Item {index}: quantity must be a whole number.') from None
        if quantity < 1:
            raise PurchaseOrderError(f'Item {index}: quantity must be at least 1.')
        try:
            unit_price = money(raw.get('unit_price'))
        except SaleError:
            raise PurchaseOrderError(f'Item {index}: unit price is not a number.') from None
        if unit_price < 0:
            raise PurchaseOrderError(f'Item {index}: unit price cannot be negative.')
        product_id = raw.get('product_id')
        if product_id not in (None, ''):
            try:
                product_id = int(product_id)
            except (TypeError, ValueError):
                raise PurchaseOrderError(f'Item {index}: invalid product id.') from None
        else:
            product_id = None
        lines.append(
            OrderLine(
                product_id=product_id,
                quantity_ordered=quantity,
                unit_price=unit_price,
            )
        )
    return lines


def _resolve_products(tenant: Tenant, lines: Iterable[OrderLine]) -> Dict[int, Product]:
    wanted = {line.product_id for line in lines if line.product_id}
    products = {p.pk: p for p in Product.objects.filter(tenant=tenant, pk__in=wanted)}
    missing = wanted - products.keys()
    if missing:
        raise PurchaseOrderError(f'Unknown product id(s): {", ".join(str(pk) for pk in sorted(missing))}.')
    return products


def _resolve_supplier(tenant: Tenant, supplier_id: Any) -> Optional[Supplier]:
    if supplier_id in (None, ''):
        return None
    supplier = Supplier.objects.filter(tenant=tenant, pk=supplier_id).first()
    if supplier is None:
        raise PurchaseOrderError('Supplier not found.')
    return supplier


def _write_lines(order: PurchaseOrder, lines: List[OrderLine], products: Dict[int, Product]) -> Decimal:
    total = Decimal('0.00')
    for line in lines:
        PurchaseOrderItem.objects.create(
            tenant=order.tenant,
            purchase_order=order,
            product=products.get(line.product_id) if line.product_id else None,
            quantity_ordered=line.quantity_ordered,
            unit_price=line.unit_price,
            line_total=line.line_total,
        )
        total += line.line_total
    return total


def create_purchase_order(tenant: Tenant, payload: Dict[str, Any]) -> PurchaseOrder:
    """Create an order and its line items; ``total_amount`` is the sum of line totals."""

    status = payload.get('status') or PurchaseOrder.Status.DRAFT
    if status not in PurchaseOrder.Status.values:
        raise PurchaseOrderError(f'Invalid status "{status}".')
    if status == PurchaseOrder.Status.RECEIVED:
        raise PurchaseOrderError('Create the order first, then receive it.')
    order_date = _coerce_date(payload.get('order_date'), 'Order date') or timezone.localdate()
    expected = _coerce_date(payload.get('expected_delivery_date'), 'Expected delivery date')
    lines = parse_lines(payload.get('items'))

    with transaction.atomic():
        supplier = _resolve_supplier(tenant, payload.get('supplier_id'))
        products = _resolve_products(tenant, lines)
        order = PurchaseOrder.objects.create(
            tenant=tenant,
            supplier=supplier,
            order_date=order_date,
            expected_delivery_date=expected,
            status=status,
        )
        order.total_amount = _write_lines(order, lines, products)
        order.save(update_fields=['total_amount', 'updated_at'])
    logger.info('Created purchase order %s for tenant %s', order.pk, tenant.pk)
    return order


def update_purchase_order(order: PurchaseOrder, payload: Dict[str, Any]) -> PurchaseOrder:
    """Update header fields and, when ``items`` is given, replace the lines."""

    if order.status in (PurchaseOrder.Status.RECEIVED, PurchaseOrder.Status.CANCELLED):
        raise PurchaseOrderError('Received or cancelled orders cannot be edited.')
    with transaction.atomic():
        if 'supplier_id' in payload:
            order.supplier = _resolve_supplier(order.tenant, payload.get('supplier_id'))
        if 'order_date' in payload:
            order.order_date = _coerce_date(payload.get('order_date'), 'Order date', required=True)
        if 'expected_delivery_date' in payload:
            order.expected_delivery_date = _coerce_date(
                payload.get('expected_delivery_date'), 'Expected delivery date'
            )
        if 'status' in payload:
            status = payload.get('status')
            if status not in PurchaseOrder.Status.values:
                raise PurchaseOrderError(f'Invalid status "{status}".')
            if status == PurchaseOrder.Status.RECEIVED:
                raise PurchaseOrderError('Use the receive action to receive an order.')
            order.status = status
        if 'items' in payload:
            lines = parse_lines(payload.get('items'))
            products = _resolve_products(order.tenant, lines)
            order.items.all().delete()
            order.total_amount = _write_lines(order, lines, products)
        order.save()
    return order


def receive_purchase_order(order: PurchaseOrder, *, location: str = '') -> List[InventoryItem]:
    """Mark the order received and book its lines into stock.

    Each line with a product becomes an ``available`` stock row holding the
    ordered quantity at the line's unit price.
    """

    with transaction.atomic():
        locked = PurchaseOrder.objects.select_for_update().get(pk=order.pk)
        if locked.status in (PurchaseOrder.Status.RECEIVED, PurchaseOrder.Status.CANCELLED):
            raise PurchaseOrderError(f'Order is already {locked.get_status_display().lower()}.')
        today = timezone.localdate()
        created: List[InventoryItem] = []
        for line in locked.items.select_related('product'):
            if line.product is None:
                continue
            created.append(
                InventoryItem.objects.create(
                    tenant=locked.tenant,
                    product=line.product,
                    quantity=line.quantity_ordered,
                    cost_price=line.unit_price,
                    purchase_date=today,
                    location=location,
                    status=InventoryItem.Status.AVAILABLE,
                )
            )
        locked.status = PurchaseOrder.Status.RECEIVED
        locked.received_at = timezone.now()
        locked.save(update_fields=['status', 'received_at', 'updated_at'])
    order.refresh_from_db()
    logger.info('Received purchase order %s (%d stock rows)', order.pk, len(created))
    return created


def serialize_purchase_order(order: PurchaseOrder, *, include_items: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'id': order.pk,
        'supplier_id': order.supplier_id,
        'supplier_name': order.supplier.name if order.supplier else None,
        'order_date': order.order_date.isoformat(),
        'expected_delivery_date': (
            order.expected_delivery_date.isoformat() if order.expected_delivery_date else None
        ),
        'status': order.status,
        'total_amount': str(order.total_amount),
        'created_at': order.created_at.isoformat(),
    }
    if include_items:
        data['items'] = [
            {
                'id': item.pk,
                'product_id': item.product_id,
                'product_name': item.product.name if item.product else None,
                'quantity_ordered': item.quantity_ordered,
                'unit_price': str(item.unit_price),
                'line_total': str(item.line_total),
            }
            for item in order.items.select_related('product')
        ]
    return data
