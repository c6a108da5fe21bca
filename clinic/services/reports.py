"""Aggregations behind the dashboard and the reports page."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.db.models import Count, DecimalField, F, IntegerField, Q, Sum, Value
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone

from clinic.models import Appointment, Customer, InventoryItem, Product, SalesOrder, SalesOrderItem
from clinic.services.scheduling import week_start

ZERO = Decimal('0.00')


def _decimal_sum(queryset, field: str) -> Decimal:
    total = queryset.aggregate(
        total=Coalesce(Sum(field), Value(ZERO), output_field=DecimalField(max_digits=14, decimal_places=2))
    )['total']
    return total or ZERO


def _completed_sales(ctx):
    return ctx.scope(SalesOrder.objects.filter(status=SalesOrder.Status.COMPLETED))


def _day_range(start: date, end: date):
    """Aware datetimes covering ``[start, end)`` in the current time zone."""

    tz = timezone.get_current_timezone()
    lower = timezone.make_aware(datetime.combine(start, time.min), tz)
    upper = timezone.make_aware(datetime.combine(end, time.min), tz)
    return lower, upper


def sales_between(ctx, start: date, end: date) -> Decimal:
    lower, upper = _day_range(start, end)
    return _decimal_sum(
        _completed_sales(ctx).filter(order_date__gte=lower, order_date__lt=upper),
        'final_amount',
    )


def low_stock_products(ctx):
    """Products whose available quantity is at or below their reorder level."""

    return (
        ctx.scope(Product.objects.filter(reorder_level__isnull=False))
        .annotate(
            available_quantity=Coalesce(
                Sum(
                    'inventory_items__quantity',
                    filter=Q(inventory_items__status=InventoryItem.Status.AVAILABLE),
                ),
                Value(0),
                output_field=IntegerField(),
            )
        )
        .filter(available_quantity__lte=F('reorder_level'))
        .select_related('category', 'supplier')
        .order_by('available_quantity', 'name')
    )


def dashboard_summary(ctx, today: Optional[date] = None) -> Dict[str, Any]:
    """Figures shown on the home dashboard (weeks start on Monday)."""

    today = today or timezone.localdate()
    this_monday = week_start(today)
    last_monday = this_monday - timedelta(days=7)
    next_monday = this_monday + timedelta(days=7)
    current_week = sales_between(ctx, this_monday, next_monday)
    last_week = sales_between(ctx, last_monday, this_monday)
    change: Optional[float] = None
    if last_week:
        change = round(float((current_week - last_week) / last_week * 100), 1)

    lower, upper = _day_range(this_monday, next_monday)
    appointments = ctx.scope(Appointment.objects.all()).exclude(status=Appointment.Status.CANCELLED)
    now = timezone.now()
    upcoming = list(
        appointments.filter(appointment_time__gte=now)
        .select_related('customer', 'provider')
        .order_by('appointment_time')[:5]
    )
    return {
        'sales_this_week': current_week,
        'sales_last_week': last_week,
        'sales_change_percent': change,
        'appointments_this_week': appointments.filter(
            appointment_time__gte=lower, appointment_time__lt=upper
        ).count(),
        'low_stock_count': low_stock_products(ctx).count(),
        'upcoming_appointments': upcoming,
        'customer_count': ctx.scope(Customer.objects.all()).count(),
    }


def sales_over_time(ctx, days: int = 30, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Completed sales per day for the last ``days`` days, zero filled."""

    today = today or timezone.localdate()
    first_day = today - timedelta(days=days - 1)
    lower, upper = _day_range(first_day, today + timedelta(days=1))
    rows = (
        _completed_sales(ctx)
        .filter(order_date__gte=lower, order_date__lt=upper)
        .annotate(day=TruncDate('order_date', tzinfo=timezone.get_current_timezone()))
        .values('day')
        .annotate(total=Sum('final_amount'), orders=Count('id'))
        .order_by()
    )
    by_day = {row['day']: row for row in rows}
    series = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        row = by_day.get(day) or {}
        series.append(
            {
                'date': day.isoformat(),
                'total': str(row.get('total') or ZERO),
                'orders': row.get('orders', 0),
            }
        )
    return series


def sales_by_category(ctx, since: date) -> List[Dict[str, Any]]:
    lower, _ = _day_range(since, since)
    rows = (
        ctx.scope(SalesOrderItem.objects.all())
        .filter(order__status=SalesOrder.Status.COMPLETED, order__order_date__gte=lower)
        .values('product__category__name')
        .annotate(total=Sum('line_total'), quantity=Sum('quantity'))
        .order_by('-total')
    )
    return [
        {
            'category': row['product__category__name'] or 'Uncategorised',
            'total': row['total'] or ZERO,
            'quantity': row['quantity'] or 0,
        }
        for row in rows
    ]


def inventory_summary(ctx) -> List[Dict[str, Any]]:
    counts = {
        row['status']: row
        for row in ctx.scope(InventoryItem.objects.all())
        .values('status')
        .annotate(rows=Count('id'), units=Sum('quantity'))
        .order_by()
    }
    summary = []
    for value, label in InventoryItem.Status.choices:
        row = counts.get(value, {})
        summary.append({'status': value, 'label': label, 'rows': row.get('rows', 0), 'units': row.get('units') or 0})
    return summary


def detailed_sales(ctx, since: Optional[date] = None, limit: int = 200) -> List[Dict[str, Any]]:
    orders = ctx.scope(SalesOrder.objects.all()).select_related('customer', 'user')
    if since is not None:
        lower, _ = _day_range(since, since)
        orders = orders.filter(order_date__gte=lower)
    result = []
    for order in orders.annotate(item_count=Sum('items__quantity'))[:limit]:
        result.append(
            {
                'id': order.pk,
                'order_number': order.order_number,
                'order_date': timezone.localtime(order.order_date).isoformat(),
                'customer': order.customer.display_name if order.customer else '',
                'status': order.status,
                'items': order.item_count or 0,
                'total_amount': str(order.total_amount),
                'discount_amount': str(order.discount_amount),
                'tax_amount': str(order.tax_amount),
                'final_amount': str(order.final_amount),
                'sold_by': (order.user.get_full_name() or order.user.username) if order.user else '',
            }
        )
    return result


def report_overview(ctx, days: int = 30, today: Optional[date] = None) -> Dict[str, Any]:
    """Everything rendered on the reports page."""

    today = today or timezone.localdate()
    since = today - timedelta(days=days - 1)
    return {
        'period_days': days,
        'since': since,
        'sales_total': sales_between(ctx, since, today + timedelta(days=1)),
        'customer_count': ctx.scope(Customer.objects.all()).count(),
        'inventory_summary': inventory_summary(ctx),
        'sales_over_time': sales_over_time(ctx, days=days, today=today),
        'sales_by_category': sales_by_category(ctx, since),
        'low_stock': list(low_stock_products(ctx)),
        'detailed_sales': detailed_sales(ctx, since=since),
    }
