"""Data models for the OpticShop application.

This module defines the database schema using Django's ORM.  Every
operational table belongs to exactly one ``Tenant`` (a clinic) through a
non-null ``tenant`` foreign key; views never query these tables without
going through :class:`clinic.services.tenancy.TenantContext` so rows of one
clinic are never visible to another.  Platform superusers are regular
Django superusers who may look at all tenants at once or pick one.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Tenant(models.Model):
    """A clinic using the application."""

    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Profile(models.Model):
    """Additional information associated with a Django auth User.

    The built-in ``User`` model handles authentication (the email address is
    used as the username).  The profile links the account to its clinic and
    records the role that drives what the user may see and change.
    """

    class Role(models.TextChoices):
        ADMIN = 'admin', 'Admin'
        PROFESSIONAL = 'professional', 'Professional'
        STAFF = 'staff', 'Staff'

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='profile')
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='profiles',
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.STAFF)
    phone = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover
        return f"Profile of {self.user.username}"

    @property
    def is_admin(self) -> bool:
        return self.role == self.Role.ADMIN


class ClinicSettings(models.Model):
    """Scheduling configuration for a clinic.

    ``working_hours`` maps lowercase weekday names (``"monday"`` ...) to a
    ``{"start": "HH:MM", "end": "HH:MM"}`` mapping, or to ``None`` when the
    clinic is closed on that day.
    """

    tenant = models.OneToOneField(Tenant, on_delete=models.CASCADE, related_name='clinic_settings')
    default_slot_duration_minutes = models.PositiveIntegerField(
        default=30,
        validators=[MinValueValidator(5)],
    )
    working_hours = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'clinic settings'

    def __str__(self) -> str:  # pragma: no cover
        return f"Settings for {self.tenant}"


class ActivityLog(models.Model):
    """Tracks user actions within the application.

    Each log entry records the user who performed the action, the clinic it
    happened in, a short description and optional details.  Clinic admins
    can review the log for their own clinic from the web interface.
    """

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='activity_logs',
    )
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='activity_logs')
    action = models.CharField(max_length=255)
    details = models.TextField(blank=True, null=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.timestamp:%Y-%m-%d %H:%M:%S} - {self.user}: {self.action}"


class Notification(models.Model):
    """Stores user facing notifications triggered by application events."""

    class EventType(models.TextChoices):
        APPOINTMENT_SCHEDULED = 'appointment_scheduled', 'Appointment Scheduled'
        APPOINTMENT_UPDATED = 'appointment_updated', 'Appointment Updated'
        APPOINTMENT_REMINDER = 'appointment_reminder', 'Appointment Reminder'
        LOW_STOCK = 'low_stock', 'Low Stock'
        ROLE_CHANGED = 'role_changed', 'Role Changed'
        CUSTOM_MESSAGE = 'custom_message', 'Custom Message'

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )
    recipient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    event_type = models.CharField(max_length=50, choices=EventType.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"Notification<{self.recipient.username} {self.event_type}>"


class TenantOwned(models.Model):
    """Abstract base for rows that belong to a single clinic."""

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Customer(TenantOwned):
    """A patient or retail customer of the clinic."""

    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address_line1 = models.CharField(max_length=255, blank=True)
    address_line2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, blank=True)
    insurance_provider = models.CharField(max_length=255, blank=True)
    insurance_policy_number = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['tenant', 'last_name'], name='customer_tenant_name_idx'),
            models.Index(fields=['tenant', 'email'], name='customer_tenant_email_idx'),
        ]

    @property
    def display_name(self) -> str:
        """Return ``"Last, First"`` with graceful handling of missing parts."""

        last = (self.last_name or '').strip()
        first = (self.first_name or '').strip()
        separator = ', ' if last and first else ''
        return f"{last}{separator}{first}".strip() or 'Unnamed Customer'

    def __str__(self) -> str:  # pragma: no cover
        return self.display_name


class CustomerNote(TenantOwned):
    """Free text note attached to a customer's record."""

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='customer_notes')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customer_notes')
    note = models.TextField()

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"Note {self.pk} for {self.customer_id}"


class Appointment(TenantOwned):
    """A scheduled visit in the clinic calendar."""

    class Type(models.TextChoices):
        EYE_EXAM = 'eye_exam', 'Eye Exam'
        CONTACT_LENS_FITTING = 'contact_lens_fitting', 'Contact Lens Fitting'
        FOLLOW_UP = 'follow_up', 'Follow Up'
        FRAME_SELECTION = 'frame_selection', 'Frame Selection'
        OTHER = 'other', 'Other'

    class Status(models.TextChoices):
        SCHEDULED = 'scheduled', 'Scheduled'
        CONFIRMED = 'confirmed', 'Confirmed'
        CANCELLED = 'cancelled', 'Cancelled'
        COMPLETED = 'completed', 'Completed'
        NO_SHOW = 'no_show', 'No Show'

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='appointments')
    provider = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='provider_appointments',
    )
    appointment_time = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(default=30, validators=[MinValueValidator(5)])
    type = models.CharField(max_length=32, choices=Type.choices, default=Type.EYE_EXAM)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.SCHEDULED)
    notes = models.TextField(blank=True)
    # Set once ``send_appointment_reminders`` has notified the provider.
    reminder_sent = models.BooleanField(default=False)

    class Meta:
        ordering = ['appointment_time']
        indexes = [
            models.Index(fields=['tenant', 'appointment_time'], name='appt_tenant_time_idx'),
        ]

    @property
    def end_time(self):
        return self.appointment_time + timedelta(minutes=self.duration_minutes or 30)

    def __str__(self) -> str:  # pragma: no cover
        return f"Appointment<{self.customer_id} {self.appointment_time:%Y-%m-%d %H:%M}>"


class MedicalRecord(TenantOwned):
    """Clinical examination notes recorded by a professional."""

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='medical_records')
    professional = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='medical_records',
    )
    record_date = models.DateField()
    chief_complaint = models.TextField(blank=True)
    medical_history = models.TextField(blank=True)
    examination_findings = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    treatment_plan = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-record_date', '-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.record_date:%Y-%m-%d} - {self.customer.display_name}"


class Prescription(TenantOwned):
    """A glasses or contact lens prescription.

    ``od_params`` (right eye) and ``os_params`` (left eye) hold the lens
    parameters as JSON: ``sph``, ``cyl`` and ``axis`` for both types, ``add``
    and ``prism`` for glasses, ``bc``, ``dia`` and ``brand`` for contacts.
    """

    class Type(models.TextChoices):
        GLASSES = 'glasses', 'Glasses'
        CONTACT_LENS = 'contact_lens', 'Contact Lens'

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='prescriptions')
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions',
    )
    prescriber = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='prescriptions_written',
    )
    prescriber_name = models.CharField(max_length=255, blank=True)
    prescription_date = models.DateField()
    expiry_date = models.DateField(null=True, blank=True)
    type = models.CharField(max_length=16, choices=Type.choices, default=Type.GLASSES)
    od_params = models.JSONField(default=dict, blank=True)
    os_params = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-prescription_date', '-created_at']

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.get_type_display()} {self.prescription_date:%Y-%m-%d} - {self.customer.display_name}"


class ProductCategory(TenantOwned):
    name = models.CharField(max_length=255)
    parent = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='children',
    )

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'product categories'
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'name'], name='unique_category_name_per_tenant'),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Supplier(TenantOwned):
    name = models.CharField(max_length=255)
    contact_person = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.TextField(blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Product(TenantOwned):
    """A catalogue entry (frame, lens, solution, accessory...)."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    brand = models.CharField(max_length=100, blank=True)
    model = models.CharField(max_length=100, blank=True)
    category = models.ForeignKey(
        ProductCategory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products',
    )
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products',
    )
    base_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    reorder_level = models.PositiveIntegerField(null=True, blank=True)
    attributes = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class InventoryItem(TenantOwned):
    """A stock row for a product: a serialised unit or a counted batch."""

    class Status(models.TextChoices):
        AVAILABLE = 'available', 'Available'
        SOLD = 'sold', 'Sold'
        DAMAGED = 'damaged', 'Damaged'
        RETURNED = 'returned', 'Returned'

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='inventory_items')
    serial_number = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    cost_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    purchase_date = models.DateField(null=True, blank=True)
    location = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.AVAILABLE)

    class Meta:
        ordering = ['product__name', 'pk']
        indexes = [
            models.Index(fields=['tenant', 'status'], name='stock_tenant_status_idx'),
        ]

    @property
    def label(self) -> str:
        if self.serial_number:
            return f"{self.product.name} (SN: {self.serial_number})"
        return f"{self.product.name} (Qty: {self.quantity})"

    def __str__(self) -> str:  # pragma: no cover
        return self.label


class PurchaseOrder(TenantOwned):
    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        ORDERED = 'ordered', 'Ordered'
        RECEIVED = 'received', 'Received'
        CANCELLED = 'cancelled', 'Cancelled'

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='purchase_orders',
    )
    order_date = models.DateField()
    expected_delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    received_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-order_date', '-pk']

    def __str__(self) -> str:  # pragma: no cover
        return f"PO-{self.pk} ({self.get_status_display()})"


class PurchaseOrderItem(TenantOwned):
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='purchase_order_items',
    )
    quantity_ordered = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ['pk']


class TaxRate(TenantOwned):
    """Sales tax rate stored as a fraction (``0.07`` for 7%)."""

    name = models.CharField(max_length=100)
    rate = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1'))],
    )
    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ['name']

    @property
    def percentage(self) -> Decimal:
        return (self.rate * 100).quantize(Decimal('0.01'))

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.percentage}%)"


class SalesOrder(TenantOwned):
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        RETURNED = 'returned', 'Returned'

    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_orders',
    )
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='sales_orders')
    order_number = models.CharField(max_length=32)
    order_date = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.ForeignKey(
        TaxRate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_orders',
    )
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-order_date', '-pk']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'order_number'], name='unique_order_number_per_tenant'),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.order_number


class SalesOrderItem(TenantOwned):
    order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='items')
    inventory_item = models.ForeignKey(
        InventoryItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_order_items',
    )
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='sales_order_items')
    prescription = models.ForeignKey(
        Prescription,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sales_order_items',
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ['pk']


class Payment(TenantOwned):
    class Method(models.TextChoices):
        CASH = 'cash', 'Cash'
        CARD = 'card', 'Card'
        TRANSFER = 'transfer', 'Transfer'
        OTHER = 'other', 'Other'

    order = models.ForeignKey(SalesOrder, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=Method.choices, default=Method.CASH)
    payment_date = models.DateTimeField()
    transaction_ref = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['-payment_date']
