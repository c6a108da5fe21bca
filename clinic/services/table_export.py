"""CSV and Excel exports for the interactive tables.

Each builder turns the rows visible in a tenant context into a dataset
``{'columns': [...], 'rows': [...], 'filename': str}``; :func:`render_export`
serialises the dataset.
"""

from __future__ import annotations

import csv
import json
import re
from io import BytesIO, StringIO
from typing import Any, Callable, Dict, List

from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook

from clinic.models import Customer, InventoryItem, PurchaseOrder, SalesOrder
from clinic.services.reports import low_stock_products
from clinic.utils import localise_text as _localise_text

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def _column(field: str, label: str, kind: str = 'text') -> Dict[str, Any]:
    return {'field': field, 'label': label, 'type': kind, 'export': True}


def _format_timestamp(value) -> str:
    if not value:
        return ''
    if hasattr(value, 'tzinfo') and timezone.is_aware(value):
        value = timezone.localtime(value)
        return value.strftime('%Y-%m-%d %H:%M')
    return value.isoformat()


def _customers_dataset(ctx, lang: str, params: Dict[str, Any]) -> Dict[str, Any]:
    columns = [
        _column('name', _localise_text(lang, 'Name', 'Nombre')),
        _column('email', 'Email'),
        _column('phone', _localise_text(lang, 'Phone', 'Teléfono')),
        _column('city', _localise_text(lang, 'City', 'Ciudad')),
        _column('insurance', _localise_text(lang, 'Insurance', 'Seguro')),
        _column('created_at', _localise_text(lang, 'Created', 'Creado')),
    ]
    rows = [
        {
            'name': customer.display_name,
            'email': customer.email,
            'phone': customer.phone,
            'city': customer.city,
            'insurance': customer.insurance_provider,
            'created_at': _format_timestamp(customer.created_at),
        }
        for customer in ctx.scope(Customer.objects.all())
    ]
    return {'columns': columns, 'rows': rows, 'filename': 'customers'}


def _inventory_dataset(ctx, lang: str, params: Dict[str, Any]) -> Dict[str, Any]:
    columns = [
        _column('product', _localise_text(lang, 'Product', 'Producto')),
        _column('serial_number', _localise_text(lang, 'Serial Number', 'Número de serie')),
        _column('quantity', _localise_text(lang, 'Quantity', 'Cantidad'), 'number'),
        _column('cost_price', _localise_text(lang, 'Cost Price', 'Costo'), 'number'),
        _column('location', _localise_text(lang, 'Location', 'Ubicación')),
        _column('status', _localise_text(lang, 'Status', 'Estado')),
    ]
    queryset = ctx.scope(InventoryItem.objects.select_related('product'))
    status = params.get('status')
    if status in InventoryItem.Status.values:
        queryset = queryset.filter(status=status)
    rows = [
        {
            'product': item.product.name,
            'serial_number': item.serial_number,
            'quantity': item.quantity,
            'cost_price': item.cost_price if item.cost_price is not None else '',
            'location': item.location,
            'status': item.get_status_display(),
        }
        for item in queryset
    ]
    return {'columns': columns, 'rows': rows, 'filename': 'inventory'}


def _sales_dataset(ctx, lang: str, params: Dict[str, Any]) -> Dict[str, Any]:
    columns = [
        _column('order_number', _localise_text(lang, 'Order', 'Orden')),
        _column('order_date', _localise_text(lang, 'Date', 'Fecha')),
        _column('customer', _localise_text(lang, 'Customer', 'Cliente')),
        _column('status', _localise_text(lang, 'Status', 'Estado')),
        _column('total_amount', 'Subtotal', 'number'),
        _column('discount_amount', _localise_text(lang, 'Discount', 'Descuento'), 'number'),
        _column('tax_amount', _localise_text(lang, 'Tax', 'Impuesto'), 'number'),
        _column('final_amount', 'Total', 'number'),
    ]
    rows = [
        {
            'order_number': order.order_number,
            'order_date': _format_timestamp(order.order_date),
            'customer': order.customer.display_name if order.customer else '',
            'status': order.get_status_display(),
            'total_amount': order.total_amount,
            'discount_amount': order.discount_amount,
            'tax_amount': order.tax_amount,
            'final_amount': order.final_amount,
        }
        for order in ctx.scope(SalesOrder.objects.select_related('customer'))
    ]
    return {'columns': columns, 'rows': rows, 'filename': 'sales-history'}


def _purchase_orders_dataset(ctx, lang: str, params: Dict[str, Any]) -> Dict[str, Any]:
    columns = [
        _column('id', 'PO', 'number'),
        _column('supplier', _localise_text(lang, 'Supplier', 'Proveedor')),
        _column('order_date', _localise_text(lang, 'Order Date', 'Fecha de orden')),
        _column('expected', _localise_text(lang, 'Expected Delivery', 'Entrega esperada')),
        _column('status', _localise_text(lang, 'Status', 'Estado')),
        _column('total_amount', 'Total', 'number'),
    ]
    rows = [
        {
            'id': order.pk,
            'supplier': order.supplier.name if order.supplier else '',
            'order_date': _format_timestamp(order.order_date),
            'expected': _format_timestamp(order.expected_delivery_date),
            'status': order.get_status_display(),
            'total_amount': order.total_amount,
        }
        for order in ctx.scope(PurchaseOrder.objects.select_related('supplier'))
    ]
    return {'columns': columns, 'rows': rows, 'filename': 'purchase-orders'}


def _low_stock_dataset(ctx, lang: str, params: Dict[str, Any]) -> Dict[str, Any]:
    columns = [
        _column('product', _localise_text(lang, 'Product', 'Producto')),
        _column('category', _localise_text(lang, 'Category', 'Categoría')),
        _column('supplier', _localise_text(lang, 'Supplier', 'Proveedor')),
        _column('available', _localise_text(lang, 'Available', 'Disponible'), 'number'),
        _column('reorder_level', _localise_text(lang, 'Reorder Level', 'Nivel de reorden'), 'number'),
    ]
    rows = [
        {
            'product': product.name,
            'category': product.category.name if product.category else '',
            'supplier': product.supplier.name if product.supplier else '',
            'available': product.available_quantity,
            'reorder_level': product.reorder_level,
        }
        for product in low_stock_products(ctx)
    ]
    return {'columns': columns, 'rows': rows, 'filename': 'low-stock'}


TABLE_EXPORT_BUILDERS: Dict[str, Callable[..., Dict[str, Any]]] = {
    'customers': _customers_dataset,
    'inventory': _inventory_dataset,
    'sales_history': _sales_dataset,
    'purchase_orders': _purchase_orders_dataset,
    'low_stock': _low_stock_dataset,
}


def _normalise_record_value(value: Any) -> str:
    """Render record values as strings for filtering and export."""

    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ''
    return str(value)


def filter_rows(rows: List[Dict[str, Any]], columns: List[Dict[str, Any]], term: str) -> List[Dict[str, Any]]:
    """Keep rows where any column contains ``term`` (case insensitive)."""

    term = (term or '').strip().lower()
    if not term:
        return rows
    fields = [column['field'] for column in columns]
    return [
        row for row in rows
        if any(term in _normalise_record_value(row.get(field)).lower() for field in fields)
    ]


def _safe_filename(name: str) -> str:
    cleaned = re.sub(r'[^A-Za-z0-9_-]+', '-', str(name)).strip('-').lower()
    return cleaned or 'table-data'


def render_export(dataset: Dict[str, Any], export_format: str = 'csv') -> HttpResponse:
    """Serialise a dataset as an XLSX workbook or a UTF-8 (BOM) CSV file."""

    columns: List[Dict[str, Any]] = [c for c in dataset.get('columns') or [] if c.get('export', True)]
    rows: List[Dict[str, Any]] = dataset.get('rows') or []
    headers = [column.get('label') or column['field'] for column in columns]
    fields = [column['field'] for column in columns]
    base_name = f"{_safe_filename(dataset.get('filename', ''))}-{timezone.now():%Y%m%d-%H%M%S}"

    if export_format == 'xlsx':
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = 'Export'
        worksheet.append(headers)
        for row in rows:
            worksheet.append([_normalise_record_value(row.get(field, '')) for field in fields])
        stream = BytesIO()
        workbook.save(stream)
        response = HttpResponse(stream.getvalue(), content_type=XLSX_CONTENT_TYPE)
        response['Content-Disposition'] = f'attachment; filename="{base_name}.xlsx"'
        return response

    output = StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_normalise_record_value(row.get(field, '')) for field in fields])
    response = HttpResponse('\ufeff' + output.getvalue(), content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{base_name}.csv"'
    return response
