"""Point of sale totals, order numbers and stock decrements."""

from datetime import datetime
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from clinic.models import InventoryItem, Payment, Profile, SalesOrder, TaxRate, Tenant
from clinic.services.sales import (
    InsufficientStockError,
    SaleError,
    SaleLine,
    compute_totals,
    next_order_number,
    record_sale,
    set_default_tax_rate,
)

from .helpers import make_customer, make_stock, make_tenant, make_user


class TotalsTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()

    def test_tax_applies_to_subtotal_with_half_up_rounding(self) -> None:
        tax = TaxRate.objects.create(tenant=self.tenant, name='VAT', rate=Decimal('0.07'))
        totals = compute_totals(
            [(2, Decimal('10.00'), Decimal('0')), (1, '5.50', '1.00')],
            discount='2.00',
            tax_rate=tax,
        )
        self.assertEqual(totals.line_totals, [Decimal('20.00'), Decimal('4.50')])
        self.assertEqual(totals.subtotal, Decimal('24.50'))
        self.assertEqual(totals.tax, Decimal('1.72'))
        self.assertEqual(totals.final, Decimal('24.22'))

    def test_final_amount_never_negative(self) -> None:
        totals = compute_totals([(1, '5.00', '0')], discount='50')
        self.assertEqual(totals.final, Decimal('0.00'))

    def test_invalid_amount(self) -> None:
        with self.assertRaises(SaleError):
            compute_totals([(1, 'abc', '0')])

    def test_single_default_tax_rate(self) -> None:
        first = TaxRate.objects.create(tenant=self.tenant, name='A', rate=Decimal('0.05'), is_default=True)
        second = TaxRate.objects.create(tenant=self.tenant, name='B', rate=Decimal('0.10'))
        other_tenant_rate = TaxRate.objects.create(
            tenant=make_tenant('Other'), name='C', rate=Decimal('0.2'), is_default=True
        )
        set_default_tax_rate(second)
        first.refresh_from_db()
        second.refresh_from_db()
        other_tenant_rate.refresh_from_db()
        self.assertFalse(first.is_default)
        self.assertTrue(second.is_default)
        self.assertTrue(other_tenant_rate.is_default)


class OrderNumberTests(TestCase):
    def test_numbers_are_per_tenant_and_day(self) -> None:
        tenant = make_tenant()
        other = make_tenant('Other')
        when = timezone.make_aware(datetime(2026, 3, 2, 12, 0))
        self.assertEqual(next_order_number(tenant, when), 'SO-20260302-0001')
        SalesOrder.objects.create(tenant=tenant, order_number='SO-20260302-0001', order_date=when)
        SalesOrder.objects.create(tenant=tenant, order_number='SO-20260302-0007', order_date=when)
        self.assertEqual(next_order_number(tenant, when), 'SO-20260302-0008')
        self.assertEqual(next_order_number(other, when), 'SO-20260302-0001')
        next_day = timezone.make_aware(datetime(2026, 3, 3, 9, 0))
        self.assertEqual(next_order_number(tenant, next_day), 'SO-20260303-0001')


class RecordSaleTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.user = make_user('cashier@clinic.test', self.tenant, role=Profile.Role.STAFF)
        self.customer = make_customer(self.tenant)
        TaxRate.objects.create(tenant=self.tenant, name='VAT', rate=Decimal('0.10'), is_default=True)
        _, self.frames = make_stock(self.tenant, 'Frame', '100.00', quantity=3)
        _, self.lens = make_stock(self.tenant, 'Lens', '40.00', quantity=1)

    def test_records_order_items_payment_and_stock(self) -> None:
        order = record_sale(
            self.tenant,
            self.user,
            [SaleLine(self.frames.pk, 2), SaleLine(self.lens.pk, 1)],
            customer=self.customer,
            discount='10.00',
            payment_method=Payment.Method.CARD,
        )
        self.assertEqual(order.status, SalesOrder.Status.COMPLETED)
        self.assertEqual(order.total_amount, Decimal('240.00'))
        self.assertEqual(order.tax_amount, Decimal('24.00'))
        self.assertEqual(order.final_amount, Decimal('254.00'))
        self.assertEqual(order.items.count(), 2)
        payment = order.payments.get()
        self.assertEqual((payment.amount, payment.method), (Decimal('254.00'), Payment.Method.CARD))

        self.frames.refresh_from_db()
        self.lens.refresh_from_db()
        self.assertEqual(self.frames.quantity, 1)
        self.assertEqual(self.frames.status, InventoryItem.Status.AVAILABLE)
        self.assertEqual(self.lens.quantity, 0)
        self.assertEqual(self.lens.status, InventoryItem.Status.SOLD)

    def test_insufficient_stock_rolls_back(self) -> None:
        with self.assertRaises(InsufficientStockError):
            record_sale(self.tenant, self.user, [SaleLine(self.frames.pk, 1), SaleLine(self.lens.pk, 2)])
        self.frames.refresh_from_db()
        self.assertEqual(self.frames.quantity, 3)
        self.assertFalse(SalesOrder.objects.exists())

    def test_repeated_row_counts_against_stock(self) -> None:
        with self.assertRaises(InsufficientStockError):
            record_sale(self.tenant, self.user, [SaleLine(self.frames.pk, 2), SaleLine(self.frames.pk, 2)])

    def test_foreign_stock_and_customers_are_rejected(self) -> None:
        other = make_tenant('Other')
        _, foreign_item = make_stock(other, 'Foreign')
        with self.assertRaises(SaleError):
            record_sale(self.tenant, self.user, [SaleLine(foreign_item.pk, 1)])
        with self.assertRaises(SaleError):
            record_sale(self.tenant, self.user, [SaleLine(self.frames.pk, 1)], customer=make_customer(other))
        with self.assertRaises(SaleError):
            record_sale(self.tenant, self.user, [])

    def test_sales_lock_tenant_row_before_numbering(self) -> None:
        with mock.patch.object(
            Tenant.objects, 'select_for_update', wraps=Tenant.objects.select_for_update
        ) as locked:
            first = record_sale(self.tenant, self.user, [SaleLine(self.frames.pk, 1)])
            second = record_sale(self.tenant, self.user, [SaleLine(self.lens.pk, 1)])
        self.assertEqual(locked.call_count, 2)
        self.assertNotEqual(first.order_number, second.order_number)
        self.assertTrue(second.order_number.endswith('-0002'))


class PointOfSaleViewTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.user = make_user('cashier@clinic.test', self.tenant, role=Profile.Role.STAFF)
        self.product, self.item = make_stock(self.tenant, 'Frame', '80.00', quantity=2)
        self.client.force_login(self.user)

    def sale_payload(self, quantity: int) -> dict:
        return {
            'customer': '',
            'discount': '0',
            'payment_method': Payment.Method.CASH,
            'notes': '',
            'lines-TOTAL_FORMS': '1',
            'lines-INITIAL_FORMS': '0',
            'lines-MIN_NUM_FORMS': '1',
            'lines-MAX_NUM_FORMS': '1000',
            'lines-0-inventory_item': str(self.item.pk),
            'lines-0-quantity': str(quantity),
        }

    def test_sale_redirects_to_receipt(self) -> None:
        response = self.client.post(reverse('pos'), self.sale_payload(2))
        order = SalesOrder.objects.get()
        self.assertRedirects(response, reverse('sale_detail', args=[order.pk]), fetch_redirect_response=False)
        self.assertEqual(order.final_amount, Decimal('160.00'))
        self.assertEqual(order.user, self.user)
        detail = self.client.get(reverse('sale_detail', args=[order.pk]))
        self.assertContains(detail, order.order_number)

    def test_quantity_above_stock_rerenders_form(self) -> None:
        response = self.client.post(reverse('pos'), self.sale_payload(3))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(SalesOrder.objects.exists())

    def test_product_with_sales_cannot_be_deleted(self) -> None:
        self.client.post(reverse('pos'), self.sale_payload(1))
        self.client.post(reverse('product_delete', args=[self.product.pk]))
        self.assertTrue(type(self.product).objects.filter(pk=self.product.pk).exists())
