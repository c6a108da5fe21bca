"""Dashboard figures, report endpoints and table exports."""

import json
from datetime import date, datetime, timedelta
from decimal import Decimal
from io import BytesIO

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from openpyxl import load_workbook

from clinic.models import InventoryItem, Product, SalesOrder
from clinic.services.reports import dashboard_summary, low_stock_products, sales_over_time
from clinic.services.tenancy import TenantContext

from .helpers import make_customer, make_stock, make_tenant, make_user

WEDNESDAY = date(2026, 3, 4)


def sale(tenant, number: str, day: date, amount: str, status=SalesOrder.Status.COMPLETED) -> SalesOrder:
    when = timezone.make_aware(datetime.combine(day, datetime.min.time()).replace(hour=12))
    return SalesOrder.objects.create(
        tenant=tenant, order_number=number, order_date=when, status=status,
        total_amount=Decimal(amount), final_amount=Decimal(amount),
    )


class ReportServiceTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.ctx = TenantContext(tenant=self.tenant)

    def test_dashboard_compares_weeks(self) -> None:
        sale(self.tenant, 'SO-1', WEDNESDAY, '150.00')
        sale(self.tenant, 'SO-2', WEDNESDAY - timedelta(days=7), '100.00')
        sale(self.tenant, 'SO-3', WEDNESDAY, '999.00', status=SalesOrder.Status.CANCELLED)
        sale(make_tenant('Other'), 'SO-1', WEDNESDAY, '500.00')
        summary = dashboard_summary(self.ctx, today=WEDNESDAY)
        self.assertEqual(summary['sales_this_week'], Decimal('150.00'))
        self.assertEqual(summary['sales_last_week'], Decimal('100.00'))
        self.assertEqual(summary['sales_change_percent'], 50.0)

    def test_no_change_percent_without_previous_sales(self) -> None:
        summary = dashboard_summary(self.ctx, today=WEDNESDAY)
        self.assertIsNone(summary['sales_change_percent'])

    def test_low_stock_counts_available_units(self) -> None:
        low, item = make_stock(self.tenant, 'Drops', quantity=2, reorder_level=3)
        InventoryItem.objects.create(tenant=self.tenant, product=low, quantity=5, status=InventoryItem.Status.DAMAGED)
        make_stock(self.tenant, 'Frame', quantity=10, reorder_level=3)
        Product.objects.create(tenant=self.tenant, name='Empty', reorder_level=0)
        Product.objects.create(tenant=self.tenant, name='Untracked')
        names = [(p.name, p.available_quantity) for p in low_stock_products(self.ctx)]
        self.assertEqual(names, [('Empty', 0), ('Drops', 2)])

    def test_sales_over_time_is_zero_filled(self) -> None:
        sale(self.tenant, 'SO-1', WEDNESDAY, '20.00')
        sale(self.tenant, 'SO-2', WEDNESDAY, '5.00')
        series = sales_over_time(self.ctx, days=3, today=WEDNESDAY)
        self.assertEqual([point['date'] for point in series], ['2026-03-02', '2026-03-03', '2026-03-04'])
        self.assertEqual(Decimal(series[0]['total']), Decimal('0'))
        self.assertEqual(Decimal(series[2]['total']), Decimal('25.00'))
        self.assertEqual(series[2]['orders'], 2)


class ReportViewTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.client.force_login(make_user('owner@clinic.test', self.tenant))

    def test_pages_render(self) -> None:
        self.assertEqual(self.client.get(reverse('home')).status_code, 200)
        self.assertEqual(self.client.get(reverse('reports'), {'days': '7'}).status_code, 200)

    def test_api_endpoints(self) -> None:
        make_stock(self.tenant, 'Drops', quantity=1, reorder_level=2)
        payload = self.client.get(reverse('api_report_low_stock')).json()
        self.assertEqual(payload['count'], 1)
        self.assertEqual(payload['items'][0]['available_quantity'], 1)

        series = self.client.get(reverse('api_report_sales_over_time'), {'days': '7'}).json()
        self.assertEqual(series['days'], 7)
        self.assertEqual(len(series['series']), 7)

        sale(self.tenant, 'SO-1', timezone.localdate(), '12.00')
        sales = self.client.get(reverse('api_report_detailed_sales')).json()['sales']
        self.assertEqual([row['order_number'] for row in sales], ['SO-1'])


class TableExportTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.client.force_login(make_user('owner@clinic.test', self.tenant))
        make_customer(self.tenant, 'José', 'Núñez', city='Quito')
        make_customer(self.tenant, 'Ann', 'Lee', city='Lima')
        make_customer(make_tenant('Other'), 'Hidden', 'Person')

    def export(self, payload):
        return self.client.post(reverse('table_export'), data=json.dumps(payload), content_type='application/json')

    def test_csv_has_bom_and_tenant_rows(self) -> None:
        response = self.export({'context': 'customers', 'format': 'csv'})
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment; filename="customers-', response['Content-Disposition'])
        body = response.content.decode('utf-8')
        self.assertTrue(body.startswith('\ufeff'))
        lines = body.lstrip('\ufeff').splitlines()
        self.assertEqual(lines[0].split(',')[0], 'Name')
        self.assertEqual(len(lines), 3)
        self.assertNotIn('Hidden', body)

    def test_global_filter(self) -> None:
        response = self.export({'context': 'customers', 'filters': {'global': 'quito'}})
        lines = response.content.decode('utf-8').lstrip('\ufeff').splitlines()
        self.assertEqual(len(lines), 2)
        self.assertIn('Núñez, José', lines[1])

    def test_xlsx(self) -> None:
        response = self.export({'context': 'customers', 'format': 'xlsx'})
        sheet = load_workbook(BytesIO(response.content)).active
        self.assertEqual(sheet.max_row, 3)
        self.assertEqual(sheet.cell(row=1, column=1).value, 'Name')

    def test_errors(self) -> None:
        self.assertEqual(self.export({'context': 'nope'}).status_code, 400)
        self.assertEqual(self.export({'format': 'csv'}).status_code, 400)
        self.assertEqual(self.export({'context': 'customers', 'format': 'pdf'}).status_code, 400)
        response = self.client.post(reverse('table_export'), data='not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
