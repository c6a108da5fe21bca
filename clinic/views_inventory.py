"""Inventory, purchasing, point of sale and reporting views."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, Optional

from django.contrib import messages
from django.core.paginator import Paginator
from django.db.models import ProtectedError, Q, Sum
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils import timezone
from django.views.decorators.http import require_http_methods, require_POST

from .forms import (
    InventoryItemForm,
    ProductCategoryForm,
    ProductForm,
    PurchaseOrderForm,
    PurchaseOrderLineFormSet,
    SaleForm,
    SaleLineFormSet,
    SupplierForm,
    TaxRateForm,
)
from .models import (
    InventoryItem,
    Product,
    ProductCategory,
    PurchaseOrder,
    SalesOrder,
    Supplier,
    TaxRate,
)
from .services.purchasing import (
    PurchaseOrderError,
    create_purchase_order,
    receive_purchase_order,
    serialize_purchase_order,
    update_purchase_order,
)
from .services.reports import detailed_sales, low_stock_products, report_overview, sales_over_time
from .services.sales import SaleError, SaleLine, default_tax_rate, record_sale, set_default_tax_rate
from .views import (
    PAGE_SIZE,
    _build_breadcrumbs,
    _get_lang,
    _is_admin,
    _load_json_body,
    _localise_text,
    _owner_context,
    _parse_day,
    _write_tenant,
    log_activity,
    tenant_required,
)

REPORT_PERIODS = (7, 30, 90, 365)


def _form_page(request: HttpRequest, form, title: str, list_url_name: str, list_label: str) -> HttpResponse:
    lang = _get_lang(request)
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': title,
            'cancel_url': reverse(list_url_name),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (list_label, reverse(list_url_name)), (title, None)),
        },
    )


def _days_param(request: HttpRequest, default: int = 30) -> int:
    try:
        days = int(request.GET.get('days') or default)
    except (TypeError, ValueError):
        return default
    return min(max(days, 1), 365)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@tenant_required
def product_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    products = ctx.scope(Product.objects.select_related('category', 'supplier')).annotate(
        available_quantity=Sum('inventory_items__quantity', filter=Q(inventory_items__status=InventoryItem.Status.AVAILABLE))
    )
    query = (request.GET.get('q') or '').strip()
    if query:
        products = products.filter(Q(name__icontains=query) | Q(brand__icontains=query) | Q(model__icontains=query))
    category_id = request.GET.get('category')
    if category_id and category_id.isdigit():
        products = products.filter(category_id=category_id)
    return render(
        request,
        'products_list.html',
        {
            'page': Paginator(products, PAGE_SIZE).get_page(request.GET.get('page')),
            'query': query,
            'categories': ctx.scope(ProductCategory.objects.all()),
            'selected_category': category_id or '',
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Products', 'Productos'), None)),
        },
    )


@tenant_required
def product_add(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('product_list')
    form = ProductForm(request.POST or None, tenant_ctx=ctx)
    if request.method == 'POST' and form.is_valid():
        product = form.save(commit=False)
        product.tenant = tenant
        product.save()
        log_activity(request.user, 'Added product', product.name, tenant)
        messages.success(request, _localise_text(lang, 'Product created.', 'Producto creado.'))
        return redirect('product_list')
    return _form_page(request, form, _localise_text(lang, 'New Product', 'Nuevo producto'), 'product_list', _localise_text(lang, 'Products', 'Productos'))


@tenant_required
def product_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    product = get_object_or_404(ctx.scope(Product.objects.all()), pk=pk)
    form = ProductForm(request.POST or None, instance=product, tenant_ctx=_owner_context(product))
    if request.method == 'POST' and form.is_valid():
        form.save()
        log_activity(request.user, 'Updated product', product.name, product.tenant)
        messages.success(request, _localise_text(lang, 'Product updated.', 'Producto actualizado.'))
        return redirect('product_list')
    return _form_page(request, form, _localise_text(lang, 'Edit Product', 'Editar producto'), 'product_list', _localise_text(lang, 'Products', 'Productos'))


@tenant_required
@require_POST
def product_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    product = get_object_or_404(request.tenant_context.scope(Product.objects.all()), pk=pk)
    try:
        product.delete()
    except ProtectedError:
        messages.error(
            request,
            _localise_text(lang, 'This product has sales and cannot be deleted.', 'Este producto tiene ventas y no se puede eliminar.'),
        )
        return redirect('product_list')
    log_activity(request.user, 'Deleted product', product.name, product.tenant)
    messages.success(request, _localise_text(lang, 'Product deleted.', 'Producto eliminado.'))
    return redirect('product_list')


# ---------------------------------------------------------------------------
# Stock items
# ---------------------------------------------------------------------------


@tenant_required
def inventory_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    items = request.tenant_context.scope(InventoryItem.objects.select_related('product'))
    status = request.GET.get('status') or ''
    if status in InventoryItem.Status.values:
        items = items.filter(status=status)
    query = (request.GET.get('q') or '').strip()
    if query:
        items = items.filter(
            Q(product__name__icontains=query) | Q(serial_number__icontains=query) | Q(location__icontains=query)
        )
    return render(
        request,
        'inventory_list.html',
        {
            'page': Paginator(items, PAGE_SIZE).get_page(request.GET.get('page')),
            'statuses': InventoryItem.Status.choices,
            'selected_status': status,
            'query': query,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Inventory', 'Inventario'), None)),
        },
    )


@tenant_required
def inventory_add(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('inventory_list')
    initial = {'purchase_date': timezone.localdate()}
    product_id = request.GET.get('product')
    if product_id and product_id.isdigit():
        initial['product'] = ctx.scope(Product.objects.all()).filter(pk=product_id).first()
    form = InventoryItemForm(request.POST or None, initial=initial, tenant_ctx=ctx)
    if request.method == 'POST' and form.is_valid():
        item = form.save(commit=False)
        item.tenant = tenant
        item.save()
        log_activity(request.user, 'Added stock', f'{item.label} x{item.quantity}', tenant)
        messages.success(request, _localise_text(lang, 'Stock item added.', 'Existencia agregada.'))
        return redirect('inventory_list')
    return _form_page(request, form, _localise_text(lang, 'New Stock Item', 'Nueva existencia'), 'inventory_list', _localise_text(lang, 'Inventory', 'Inventario'))


@tenant_required
def inventory_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    item = get_object_or_404(ctx.scope(InventoryItem.objects.all()), pk=pk)
    form = InventoryItemForm(request.POST or None, instance=item, tenant_ctx=_owner_context(item))
    if request.method == 'POST' and form.is_valid():
        form.save()
        log_activity(request.user, 'Updated stock', f'{item.label} x{item.quantity} ({item.status})', item.tenant)
        messages.success(request, _localise_text(lang, 'Stock item updated.', 'Existencia actualizada.'))
        return redirect('inventory_list')
    return _form_page(request, form, _localise_text(lang, 'Edit Stock Item', 'Editar existencia'), 'inventory_list', _localise_text(lang, 'Inventory', 'Inventario'))


@tenant_required
@require_POST
def inventory_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    item = get_object_or_404(request.tenant_context.scope(InventoryItem.objects.select_related('product')), pk=pk)
    label = item.label
    item.delete()
    log_activity(request.user, 'Deleted stock', label, item.tenant)
    messages.success(request, _localise_text(lang, 'Stock item deleted.', 'Existencia eliminada.'))
    return redirect('inventory_list')


# ---------------------------------------------------------------------------
# Categories and suppliers
# ---------------------------------------------------------------------------


@tenant_required
def category_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    categories = request.tenant_context.scope(ProductCategory.objects.select_related('parent'))
    return render(
        request,
        'categories_list.html',
        {
            'categories': categories,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Categories', 'Categorías'), None)),
        },
    )


@tenant_required
def category_add(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('category_list')
    form = ProductCategoryForm(request.POST or None, tenant_ctx=ctx)
    if request.method == 'POST' and form.is_valid():
        category = form.save(commit=False)
        category.tenant = tenant
        category.save()
        messages.success(request, _localise_text(lang, 'Category created.', 'Categoría creada.'))
        return redirect('category_list')
    return _form_page(request, form, _localise_text(lang, 'New Category', 'Nueva categoría'), 'category_list', _localise_text(lang, 'Categories', 'Categorías'))


@tenant_required
def category_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    category = get_object_or_404(ctx.scope(ProductCategory.objects.all()), pk=pk)
    form = ProductCategoryForm(request.POST or None, instance=category, tenant_ctx=_owner_context(category))
    if request.method == 'POST' and form.is_valid():
        form.save()
        messages.success(request, _localise_text(lang, 'Category updated.', 'Categoría actualizada.'))
        return redirect('category_list')
    return _form_page(request, form, _localise_text(lang, 'Edit Category', 'Editar categoría'), 'category_list', _localise_text(lang, 'Categories', 'Categorías'))


@tenant_required
@require_POST
def category_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    category = get_object_or_404(request.tenant_context.scope(ProductCategory.objects.all()), pk=pk)
    category.delete()
    messages.success(request, _localise_text(lang, 'Category deleted.', 'Categoría eliminada.'))
    return redirect('category_list')


@tenant_required
def supplier_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    suppliers = request.tenant_context.scope(Supplier.objects.all())
    return render(
        request,
        'suppliers_list.html',
        {
            'suppliers': suppliers,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Suppliers', 'Proveedores'), None)),
        },
    )


@tenant_required
def supplier_add(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('supplier_list')
    form = SupplierForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        supplier = form.save(commit=False)
        supplier.tenant = tenant
        supplier.save()
        messages.success(request, _localise_text(lang, 'Supplier created.', 'Proveedor creado.'))
        return redirect('supplier_list')
    return _form_page(request, form, _localise_text(lang, 'New Supplier', 'Nuevo proveedor'), 'supplier_list', _localise_text(lang, 'Suppliers', 'Proveedores'))


@tenant_required
def supplier_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    supplier = get_object_or_404(request.tenant_context.scope(Supplier.objects.all()), pk=pk)
    form = SupplierForm(request.POST or None, instance=supplier)
    if request.method == 'POST' and form.is_valid():
        form.save()
        messages.success(request, _localise_text(lang, 'Supplier updated.', 'Proveedor actualizado.'))
        return redirect('supplier_list')
    return _form_page(request, form, _localise_text(lang, 'Edit Supplier', 'Editar proveedor'), 'supplier_list', _localise_text(lang, 'Suppliers', 'Proveedores'))


@tenant_required
@require_POST
def supplier_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    supplier = get_object_or_404(request.tenant_context.scope(Supplier.objects.all()), pk=pk)
    supplier.delete()
    messages.success(request, _localise_text(lang, 'Supplier deleted.', 'Proveedor eliminado.'))
    return redirect('supplier_list')


# ---------------------------------------------------------------------------
# Tax rates
# ---------------------------------------------------------------------------


def _deny_non_admin(request: HttpRequest) -> Optional[HttpResponse]:
    if _is_admin(request.user):
        return None
    lang = _get_lang(request)
    messages.warning(request, _localise_text(lang, 'Access denied: admins only.', 'Acceso denegado: solo administradores.'))
    return redirect('home')


@tenant_required
def tax_rate_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    return render(
        request,
        'tax_rates_list.html',
        {
            'tax_rates': request.tenant_context.scope(TaxRate.objects.all()),
            'can_manage': _is_admin(request.user),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Tax Rates', 'Impuestos'), None)),
        },
    )


@tenant_required
def tax_rate_add(request: HttpRequest) -> HttpResponse:
    denied = _deny_non_admin(request)
    if denied:
        return denied
    lang = _get_lang(request)
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('tax_rate_list')
    form = TaxRateForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        tax_rate = form.save(commit=False)
        tax_rate.tenant = tenant
        make_default = tax_rate.is_default
        tax_rate.is_default = False
        tax_rate.save()
        if make_default:
            set_default_tax_rate(tax_rate)
        log_activity(request.user, 'Added tax rate', f'{tax_rate.name} {tax_rate.percentage}%', tenant)
        messages.success(request, _localise_text(lang, 'Tax rate created.', 'Impuesto creado.'))
        return redirect('tax_rate_list')
    return _form_page(request, form, _localise_text(lang, 'New Tax Rate', 'Nuevo impuesto'), 'tax_rate_list', _localise_text(lang, 'Tax Rates', 'Impuestos'))


@tenant_required
def tax_rate_edit(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_non_admin(request)
    if denied:
        return denied
    lang = _get_lang(request)
    tax_rate = get_object_or_404(request.tenant_context.scope(TaxRate.objects.all()), pk=pk)
    form = TaxRateForm(request.POST or None, instance=tax_rate)
    if request.method == 'POST' and form.is_valid():
        tax_rate = form.save()
        if tax_rate.is_default:
            set_default_tax_rate(tax_rate)
        messages.success(request, _localise_text(lang, 'Tax rate updated.', 'Impuesto actualizado.'))
        return redirect('tax_rate_list')
    return _form_page(request, form, _localise_text(lang, 'Edit Tax Rate', 'Editar impuesto'), 'tax_rate_list', _localise_text(lang, 'Tax Rates', 'Impuestos'))


@tenant_required
@require_POST
def tax_rate_set_default(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_non_admin(request)
    if denied:
        return denied
    lang = _get_lang(request)
    tax_rate = get_object_or_404(request.tenant_context.scope(TaxRate.objects.all()), pk=pk)
    set_default_tax_rate(tax_rate)
    log_activity(request.user, 'Set default tax rate', tax_rate.name, tax_rate.tenant)
    messages.success(request, _localise_text(lang, f'{tax_rate.name} is now the default.', f'{tax_rate.name} es ahora el predeterminado.'))
    return redirect('tax_rate_list')


@tenant_required
@require_POST
def tax_rate_delete(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_non_admin(request)
    if denied:
        return denied
    lang = _get_lang(request)
    tax_rate = get_object_or_404(request.tenant_context.scope(TaxRate.objects.all()), pk=pk)
    tax_rate.delete()
    messages.success(request, _localise_text(lang, 'Tax rate deleted.', 'Impuesto eliminado.'))
    return redirect('tax_rate_list')


# ---------------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------------


@tenant_required
def purchase_order_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    orders = request.tenant_context.scope(PurchaseOrder.objects.select_related('supplier'))
    status = request.GET.get('status') or ''
    if status in PurchaseOrder.Status.values:
        orders = orders.filter(status=status)
    return render(
        request,
        'purchase_orders_list.html',
        {
            'page': Paginator(orders, PAGE_SIZE).get_page(request.GET.get('page')),
            'statuses': PurchaseOrder.Status.choices,
            'selected_status': status,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Purchase Orders', 'Órdenes de compra'), None)),
        },
    )


@tenant_required
def purchase_order_add(request: HttpRequest) -> HttpResponse:
    """Create an order from a header form and a formset of lines."""

    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('purchase_order_list')
    if request.method == 'POST':
        form = PurchaseOrderForm(request.POST, tenant_ctx=ctx)
        formset = PurchaseOrderLineFormSet(request.POST, prefix='items', form_kwargs={'tenant_ctx': ctx})
        if form.is_valid() and formset.is_valid():
            header = form.cleaned_data
            payload: Dict[str, Any] = {
                'supplier_id': header['supplier'].pk if header.get('supplier') else None,
                'order_date': header['order_date'],
                'expected_delivery_date': header.get('expected_delivery_date'),
                'status': header['status'],
                'items': [
                    {
                        'product_id': line['product'].pk,
                        'quantity_ordered': line['quantity_ordered'],
                        'unit_price': line['unit_price'],
                    }
                    for line in formset.cleaned_data
                    if line
                ],
            }
            try:
                order = create_purchase_order(tenant, payload)
            except PurchaseOrderError as exc:
                messages.error(request, str(exc))
            else:
                log_activity(request.user, 'Created purchase order', f'{order.pk}: {order.total_amount}', tenant)
                messages.success(request, _localise_text(lang, 'Purchase order created.', 'Orden de compra creada.'))
                return redirect('purchase_order_detail', pk=order.pk)
    else:
        form = PurchaseOrderForm(tenant_ctx=ctx)
        formset = PurchaseOrderLineFormSet(prefix='items', form_kwargs={'tenant_ctx': ctx})
    return render(
        request,
        'purchase_order_form.html',
        {
            'form': form,
            'formset': formset,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Purchase Orders', 'Órdenes de compra'), reverse('purchase_order_list')),
                (_localise_text(lang, 'New', 'Nueva'), None),
            ),
        },
    )


@tenant_required
def purchase_order_detail(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    order = get_object_or_404(request.tenant_context.scope(PurchaseOrder.objects.select_related('supplier')), pk=pk)
    return render(
        request,
        'purchase_order_detail.html',
        {
            'order': order,
            'items': order.items.select_related('product'),
            'can_receive': order.status in (PurchaseOrder.Status.DRAFT, PurchaseOrder.Status.ORDERED),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Purchase Orders', 'Órdenes de compra'), reverse('purchase_order_list')),
                (f'PO-{order.pk}', None),
            ),
        },
    )


@tenant_required
@require_POST
def purchase_order_receive(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    order = get_object_or_404(request.tenant_context.scope(PurchaseOrder.objects.all()), pk=pk)
    try:
        created = receive_purchase_order(order, location=(request.POST.get('location') or '').strip())
    except PurchaseOrderError as exc:
        messages.error(request, str(exc))
    else:
        log_activity(request.user, 'Received purchase order', f'{order.pk}: {len(created)} stock rows', order.tenant)
        messages.success(
            request,
            _localise_text(lang, f'Order received: {len(created)} stock rows added.', f'Orden recibida: {len(created)} existencias agregadas.'),
        )
    return redirect('purchase_order_detail', pk=order.pk)


@tenant_required
@require_POST
def purchase_order_cancel(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    order = get_object_or_404(request.tenant_context.scope(PurchaseOrder.objects.all()), pk=pk)
    try:
        update_purchase_order(order, {'status': PurchaseOrder.Status.CANCELLED})
    except PurchaseOrderError as exc:
        messages.error(request, str(exc))
    else:
        log_activity(request.user, 'Cancelled purchase order', str(order.pk), order.tenant)
        messages.success(request, _localise_text(lang, 'Purchase order cancelled.', 'Orden de compra cancelada.'))
    return redirect('purchase_order_detail', pk=order.pk)


@tenant_required(api=True)
@require_http_methods(["GET", "POST"])
def api_purchase_orders(request: HttpRequest) -> JsonResponse:
    """List purchase orders or create one from a JSON payload."""

    ctx = request.tenant_context
    if request.method == 'GET':
        orders = ctx.scope(PurchaseOrder.objects.select_related('supplier'))
        status = request.GET.get('status')
        if status:
            orders = orders.filter(status=status)
        return JsonResponse({'purchase_orders': [serialize_purchase_order(order) for order in orders]})

    if ctx.tenant is None:
        return JsonResponse({'error': 'Select a clinic before creating purchase orders.'}, status=400)
    try:
        payload = _load_json_body(request)
        order = create_purchase_order(ctx.tenant, payload)
    except (ValueError, PurchaseOrderError) as exc:
        return JsonResponse({'error': str(exc)}, status=400)
    log_activity(request.user, 'Created purchase order', f'{order.pk}: {order.total_amount}', ctx.tenant)
    return JsonResponse(serialize_purchase_order(order, include_items=True), status=201)


@tenant_required(api=True)
@require_http_methods(["GET", "PUT", "DELETE"])
def api_purchase_order_detail(request: HttpRequest, pk: int) -> JsonResponse:
    ctx = request.tenant_context
    order = ctx.scope(PurchaseOrder.objects.select_related('supplier')).filter(pk=pk).first()
    if order is None:
        return JsonResponse({'error': 'Purchase order not found.'}, status=404)

    if request.method == 'GET':
        return JsonResponse(serialize_purchase_order(order, include_items=True))

    if request.method == 'PUT':
        try:
            payload = _load_json_body(request)
            order = update_purchase_order(order, payload)
        except (ValueError, PurchaseOrderError) as exc:
            return JsonResponse({'error': str(exc)}, status=400)
        return JsonResponse(serialize_purchase_order(order, include_items=True))

    if order.status == PurchaseOrder.Status.RECEIVED:
        return JsonResponse({'error': 'Received orders cannot be deleted.'}, status=400)
    order.delete()
    log_activity(request.user, 'Deleted purchase order', str(pk), order.tenant)
    return JsonResponse({'ok': True})


@tenant_required(api=True)
@require_http_methods(["POST"])
def api_purchase_order_receive(request: HttpRequest, pk: int) -> JsonResponse:
    ctx = request.tenant_context
    order = ctx.scope(PurchaseOrder.objects.all()).filter(pk=pk).first()
    if order is None:
        return JsonResponse({'error': 'Purchase order not found.'}, status=404)
    try:
        payload = _load_json_body(request)
        created = receive_purchase_order(order, location=str(payload.get('location') or '').strip())
    except (ValueError, PurchaseOrderError) as exc:
        return JsonResponse({'error': str(exc)}, status=400)
    log_activity(request.user, 'Received purchase order', f'{order.pk}: {len(created)} stock rows', order.tenant)
    data = serialize_purchase_order(order, include_items=True)
    data['inventory_item_ids'] = [item.pk for item in created]
    return JsonResponse(data)


# ---------------------------------------------------------------------------
# Point of sale and sales history
# ---------------------------------------------------------------------------


@tenant_required
def pos(request: HttpRequest) -> HttpResponse:
    """Sell stock rows; the whole sale is recorded in one transaction."""

    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('sales_list')
    if request.method == 'POST':
        form = SaleForm(request.POST, tenant_ctx=ctx)
        formset = SaleLineFormSet(request.POST, prefix='lines', form_kwargs={'tenant_ctx': ctx})
        if form.is_valid() and formset.is_valid():
            lines = [
                SaleLine(inventory_item_id=line['inventory_item'].pk, quantity=line['quantity'])
                for line in formset.cleaned_data
                if line
            ]
            try:
                order = record_sale(
                    tenant,
                    request.user,
                    lines,
                    customer=form.cleaned_data.get('customer'),
                    discount=form.cleaned_data.get('discount') or 0,
                    notes=form.cleaned_data.get('notes') or '',
                    payment_method=form.cleaned_data['payment_method'],
                )
            except SaleError as exc:
                messages.error(request, str(exc))
            else:
                log_activity(request.user, 'Recorded sale', f'{order.order_number}: {order.final_amount}', tenant)
                messages.success(request, _localise_text(lang, f'Sale {order.order_number} recorded.', f'Venta {order.order_number} registrada.'))
                return redirect('sale_detail', pk=order.pk)
    else:
        initial_customer = None
        customer_id = request.GET.get('customer')
        if customer_id and customer_id.isdigit():
            initial_customer = customer_id
        form = SaleForm(initial={'customer': initial_customer}, tenant_ctx=ctx)
        formset = SaleLineFormSet(prefix='lines', form_kwargs={'tenant_ctx': ctx})
    return render(
        request,
        'pos.html',
        {
            'form': form,
            'formset': formset,
            'tax_rate': default_tax_rate(tenant),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Sales', 'Ventas'), reverse('sales_list')),
                (_localise_text(lang, 'Point of Sale', 'Punto de venta'), None),
            ),
        },
    )


@tenant_required
def sales_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    orders = request.tenant_context.scope(SalesOrder.objects.select_related('customer', 'user'))
    since = _parse_day(request.GET.get('since'))
    if since:
        orders = orders.filter(order_date__date__gte=since)
    return render(
        request,
        'sales_list.html',
        {
            'page': Paginator(orders, PAGE_SIZE).get_page(request.GET.get('page')),
            'since': since,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Sales', 'Ventas'), None)),
        },
    )


@tenant_required
def sale_detail(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    order = get_object_or_404(
        request.tenant_context.scope(SalesOrder.objects.select_related('customer', 'user', 'tax_rate')),
        pk=pk,
    )
    return render(
        request,
        'sale_detail.html',
        {
            'order': order,
            'items': order.items.select_related('product', 'inventory_item', 'prescription'),
            'payments': order.payments.all(),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Sales', 'Ventas'), reverse('sales_list')),
                (order.order_number, None),
            ),
        },
    )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@tenant_required
def reports(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    days = _days_param(request)
    return render(
        request,
        'reports.html',
        {
            'overview': report_overview(request.tenant_context, days=days),
            'periods': REPORT_PERIODS,
            'days': days,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Reports', 'Reportes'), None)),
        },
    )


@tenant_required(api=True)
@require_http_methods(["GET"])
def api_report_sales_over_time(request: HttpRequest) -> JsonResponse:
    days = _days_param(request)
    return JsonResponse({'days': days, 'series': sales_over_time(request.tenant_context, days=days)})


@tenant_required(api=True)
@require_http_methods(["GET"])
def api_report_low_stock(request: HttpRequest) -> JsonResponse:
    items = [
        {
            'id': product.pk,
            'name': product.name,
            'category': product.category.name if product.category else None,
            'supplier': product.supplier.name if product.supplier else None,
            'available_quantity': product.available_quantity,
            'reorder_level': product.reorder_level,
        }
        for product in low_stock_products(request.tenant_context)
    ]
    return JsonResponse({'items': items, 'count': len(items)})


@tenant_required(api=True)
@require_http_methods(["GET"])
def api_report_detailed_sales(request: HttpRequest) -> JsonResponse:
    days = _days_param(request)
    since = timezone.localdate() - timedelta(days=days - 1)
    return JsonResponse({'days': days, 'sales': detailed_sales(request.tenant_context, since=since)})
