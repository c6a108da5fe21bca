"""Forms used by the clinic application.

This module defines Django forms for registration and login, user
management, customers, appointments, clinical records, inventory,
purchasing and the point of sale.  Forms that offer related rows in a
select (customers, products, stock items...) take a ``tenant_ctx`` keyword
so the choices are limited to the rows of the active clinic.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from django import forms
from django.conf import settings
from django.contrib.auth.models import User
from django.core.validators import FileExtensionValidator, MaxValueValidator, MinValueValidator
from django.forms import formset_factory
from django.utils import timezone

from .models import (
    Appointment,
    ClinicSettings,
    Customer,
    CustomerNote,
    InventoryItem,
    MedicalRecord,
    Payment,
    Prescription,
    Product,
    ProductCategory,
    Profile,
    PurchaseOrder,
    Supplier,
    TaxRate,
    Tenant,
)
from .services import scheduling

EYE_FIELDS = ('sph', 'cyl', 'axis', 'add', 'prism', 'bc', 'dia', 'brand')
PARAMS_BY_TYPE = {
    Prescription.Type.GLASSES.value: ('sph', 'cyl', 'axis', 'add', 'prism'),
    Prescription.Type.CONTACT_LENS.value: ('sph', 'cyl', 'axis', 'bc', 'dia', 'brand'),
}


def _scoped(tenant_ctx, queryset):
    if tenant_ctx is None:
        return queryset.none()
    return tenant_ctx.scope(queryset)


def tenant_users(tenant_ctx):
    """Users that belong to the active clinic."""

    queryset = User.objects.filter(is_active=True).select_related('profile').order_by('first_name', 'username')
    if tenant_ctx is None:
        return queryset.none()
    return tenant_ctx.scope(queryset, field='profile__tenant')


class UserChoiceField(forms.ModelChoiceField):
    def label_from_instance(self, obj: User) -> str:
        return obj.get_full_name() or obj.username


class RegistrationForm(forms.Form):
    """Sign-up form that creates a clinic together with its first admin."""

    clinic_name = forms.CharField(label='Clinic Name', max_length=255, widget=forms.TextInput(attrs={
        'class': 'form-control',
        'placeholder': 'Vista Optical',
    }))
    email = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={
        'class': 'form-control',
        'placeholder': 'you@example.com',
    }))
    full_name = forms.CharField(label='Full Name', max_length=255, widget=forms.TextInput(attrs={
        'class': 'form-control',
        'placeholder': 'Jane Doe',
    }))
    phone = forms.CharField(label='Phone', max_length=32, required=False, widget=forms.TextInput(attrs={
        'class': 'form-control',
    }))
    password = forms.CharField(label='Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))
    confirm_password = forms.CharField(label='Confirm Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))

    def clean_email(self) -> str:
        email = self.cleaned_data['email'].lower()
        if User.objects.filter(username=email).exists():
            raise forms.ValidationError('An account with this email already exists.')
        return email

    def clean_clinic_name(self) -> str:
        name = self.cleaned_data['clinic_name'].strip()
        if Tenant.objects.filter(name__iexact=name).exists():
            raise forms.ValidationError('A clinic with this name is already registered.')
        return name

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        password = cleaned_data.get('password')
        confirm = cleaned_data.get('confirm_password')
        if password and confirm and password != confirm:
            self.add_error('confirm_password', 'Passwords do not match.')
        return cleaned_data


class LoginForm(forms.Form):
    """Simple login form requesting email and password."""

    email = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={
        'class': 'form-control',
        'placeholder': 'you@example.com',
    }))
    password = forms.CharField(label='Password', widget=forms.PasswordInput(attrs={
        'class': 'form-control',
        'placeholder': '••••••••',
    }))


class ProfileForm(forms.Form):
    full_name = forms.CharField(label='Full Name', max_length=255, widget=forms.TextInput(attrs={'class': 'form-control'}))
    phone = forms.CharField(label='Phone', max_length=32, required=False, widget=forms.TextInput(attrs={'class': 'form-control'}))


class StaffMemberForm(forms.Form):
    """Adds a new user account to the current clinic."""

    email = forms.EmailField(label='Email', widget=forms.EmailInput(attrs={'class': 'form-control'}))
    full_name = forms.CharField(label='Full Name', max_length=255, widget=forms.TextInput(attrs={'class': 'form-control'}))
    role = forms.ChoiceField(
        label='Role',
        choices=Profile.Role.choices,
        initial=Profile.Role.STAFF,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    password = forms.CharField(label='Temporary Password', min_length=8, widget=forms.PasswordInput(attrs={'class': 'form-control'}))

    def clean_email(self) -> str:
        email = self.cleaned_data['email'].lower()
        if User.objects.filter(username=email).exists():
            raise forms.ValidationError('An account with this email already exists.')
        return email


class CustomerForm(forms.ModelForm):
    class Meta:
        model = Customer
        fields = [
            'first_name',
            'last_name',
            'date_of_birth',
            'email',
            'phone',
            'address_line1',
            'address_line2',
            'city',
            'state',
            'postal_code',
            'country',
            'insurance_provider',
            'insurance_policy_number',
            'notes',
        ]
        widgets = {
            'first_name': forms.TextInput(attrs={'class': 'form-control'}),
            'last_name': forms.TextInput(attrs={'class': 'form-control'}),
            'date_of_birth': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'email': forms.EmailInput(attrs={'class': 'form-control'}),
            'phone': forms.TextInput(attrs={'class': 'form-control'}),
            'address_line1': forms.TextInput(attrs={'class': 'form-control'}),
            'address_line2': forms.TextInput(attrs={'class': 'form-control'}),
            'city': forms.TextInput(attrs={'class': 'form-control'}),
            'state': forms.TextInput(attrs={'class': 'form-control'}),
            'postal_code': forms.TextInput(attrs={'class': 'form-control'}),
            'country': forms.TextInput(attrs={'class': 'form-control'}),
            'insurance_provider': forms.TextInput(attrs={'class': 'form-control'}),
            'insurance_policy_number': forms.TextInput(attrs={'class': 'form-control'}),
            'notes': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
        }

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        if not (cleaned_data.get('first_name') or '').strip() and not (cleaned_data.get('last_name') or '').strip():
            self.add_error('last_name', 'Enter a first or last name.')
        dob = cleaned_data.get('date_of_birth')
        if dob and dob > timezone.localdate():
            self.add_error('date_of_birth', 'Date of birth cannot be in the future.')
        return cleaned_data


class CustomerNoteForm(forms.ModelForm):
    class Meta:
        model = CustomerNote
        fields = ['note']
        widgets = {
            'note': forms.Textarea(attrs={'class': 'form-control', 'rows': 2, 'placeholder': 'Add a note...'}),
        }


class CustomerWorkbookForm(forms.Form):
    """Simple form wrapper around the customer workbook upload."""

    workbook = forms.FileField(
        label='Customer Excel Workbook',
        validators=[FileExtensionValidator(allowed_extensions=['xlsx'])],
        widget=forms.ClearableFileInput(
            attrs={
                'class': 'form-control',
                'accept': '.xlsx',
            }
        ),
    )


class AppointmentForm(forms.ModelForm):
    """Create or edit an appointment.

    Overlapping bookings are allowed; ``clean`` collects them in
    ``overlap_warnings`` so the view can warn the user after saving.
    Appointments outside the clinic's working hours are flagged the same
    way.
    """

    customer = forms.ModelChoiceField(queryset=Customer.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))
    provider = UserChoiceField(
        queryset=User.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    appointment_time = forms.DateTimeField(
        label='Start',
        input_formats=['%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M', '%Y-%m-%dT%H:%M:%S'],
        widget=forms.DateTimeInput(attrs={'type': 'datetime-local', 'class': 'form-control'}, format='%Y-%m-%dT%H:%M'),
    )

    class Meta:
        model = Appointment
        fields = ['customer', 'provider', 'appointment_time', 'duration_minutes', 'type', 'status', 'notes']
        widgets = {
            'duration_minutes': forms.NumberInput(attrs={'class': 'form-control', 'min': 5, 'step': 5}),
            'type': forms.Select(attrs={'class': 'form-select'}),
            'status': forms.Select(attrs={'class': 'form-select'}),
            'notes': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
        }

    def __init__(self, *args, tenant_ctx=None, clinic_settings: Optional[ClinicSettings] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.tenant_ctx = tenant_ctx
        self.clinic_settings = clinic_settings
        self.overlap_warnings: list[Appointment] = []
        self.outside_hours = False
        self.fields['customer'].queryset = _scoped(tenant_ctx, Customer.objects.all())
        self.fields['provider'].queryset = tenant_users(tenant_ctx)
        if not self.instance.pk and not self.is_bound:
            self.initial.setdefault('duration_minutes', scheduling.default_duration(clinic_settings))

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        start = cleaned_data.get('appointment_time')
        duration = cleaned_data.get('duration_minutes')
        if start and duration and self.tenant_ctx is not None:
            if cleaned_data.get('status') != Appointment.Status.CANCELLED:
                self.overlap_warnings = scheduling.find_overlaps(
                    self.tenant_ctx, start, duration, exclude_id=self.instance.pk
                )
            self.outside_hours = not scheduling.is_within_working_hours(self.clinic_settings, start, duration)
        return cleaned_data


class ClinicSettingsForm(forms.ModelForm):
    """Edit the default slot length and the weekly opening hours."""

    class Meta:
        model = ClinicSettings
        fields = ['default_slot_duration_minutes']
        widgets = {
            'default_slot_duration_minutes': forms.NumberInput(attrs={'class': 'form-control', 'min': 5, 'step': 5}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        hours = self.instance.working_hours or {}
        for day in scheduling.WEEKDAYS:
            day_hours = hours.get(day) if isinstance(hours.get(day), dict) else None
            self.fields[f'{day}_open'] = forms.BooleanField(
                label=day.title(),
                required=False,
                initial=bool(day_hours),
                widget=forms.CheckboxInput(attrs={'class': 'form-check-input'}),
            )
            self.fields[f'{day}_start'] = forms.TimeField(
                required=False,
                initial=(day_hours or {}).get('start'),
                widget=forms.TimeInput(attrs={'type': 'time', 'class': 'form-control'}, format='%H:%M'),
            )
            self.fields[f'{day}_end'] = forms.TimeField(
                required=False,
                initial=(day_hours or {}).get('end'),
                widget=forms.TimeInput(attrs={'type': 'time', 'class': 'form-control'}, format='%H:%M'),
            )

    def day_rows(self):
        for day in scheduling.WEEKDAYS:
            yield day, self[f'{day}_open'], self[f'{day}_start'], self[f'{day}_end']

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        working_hours: Dict[str, Optional[Dict[str, str]]] = {}
        for day in scheduling.WEEKDAYS:
            if not cleaned_data.get(f'{day}_open'):
                working_hours[day] = None
                continue
            start = cleaned_data.get(f'{day}_start')
            end = cleaned_data.get(f'{day}_end')
            if start and end and end <= start:
                self.add_error(f'{day}_end', 'Closing time must be after opening time.')
                continue
            entry: Dict[str, str] = {}
            if start:
                entry['start'] = start.strftime('%H:%M')
            if end:
                entry['end'] = end.strftime('%H:%M')
            working_hours[day] = entry
        # A week without any open day means "no working hours configured".
        if not any(working_hours.values()):
            working_hours = {}
        cleaned_data['working_hours'] = working_hours
        return cleaned_data

    def save(self, commit: bool = True) -> ClinicSettings:
        self.instance.working_hours = self.cleaned_data.get('working_hours', {})
        return super().save(commit=commit)


class MedicalRecordForm(forms.ModelForm):
    customer = forms.ModelChoiceField(queryset=Customer.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))
    professional = UserChoiceField(
        queryset=User.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    class Meta:
        model = MedicalRecord
        fields = [
            'customer',
            'professional',
            'record_date',
            'chief_complaint',
            'medical_history',
            'examination_findings',
            'diagnosis',
            'treatment_plan',
            'notes',
        ]
        widgets = {
            'record_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'chief_complaint': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
            'medical_history': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
            'examination_findings': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
            'diagnosis': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
            'treatment_plan': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
            'notes': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['customer'].queryset = _scoped(tenant_ctx, Customer.objects.all())
        self.fields['professional'].queryset = tenant_users(tenant_ctx)
        if not self.instance.pk and not self.is_bound:
            self.initial.setdefault('record_date', timezone.localdate())


class PrescriptionForm(forms.ModelForm):
    """Prescription with per-eye lens parameters.

    The ``od_*``/``os_*`` inputs are folded into the ``od_params`` and
    ``os_params`` JSON documents.  Empty inputs are stored as ``null`` and
    parameters that do not apply to the prescription type are dropped.
    """

    customer = forms.ModelChoiceField(queryset=Customer.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))
    medical_record = forms.ModelChoiceField(
        queryset=MedicalRecord.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    class Meta:
        model = Prescription
        fields = ['customer', 'medical_record', 'prescriber_name', 'prescription_date', 'expiry_date', 'type', 'notes']
        widgets = {
            'prescriber_name': forms.TextInput(attrs={'class': 'form-control'}),
            'prescription_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'expiry_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'type': forms.Select(attrs={'class': 'form-select'}),
            'notes': forms.Textarea(attrs={'class': 'form-control', 'rows': 3}),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['customer'].queryset = _scoped(tenant_ctx, Customer.objects.all())
        self.fields['medical_record'].queryset = _scoped(
            tenant_ctx, MedicalRecord.objects.select_related('customer')
        )
        for eye in ('od', 'os'):
            stored = getattr(self.instance, f'{eye}_params', None) or {}
            for name in EYE_FIELDS:
                key = f'{eye}_{name}'
                if name == 'axis':
                    field = forms.IntegerField(
                        required=False,
                        validators=[MinValueValidator(0), MaxValueValidator(180)],
                        widget=forms.NumberInput(attrs={'class': 'form-control', 'min': 0, 'max': 180}),
                    )
                elif name == 'brand':
                    field = forms.CharField(required=False, max_length=100, widget=forms.TextInput(attrs={'class': 'form-control'}))
                else:
                    field = forms.DecimalField(
                        required=False,
                        max_digits=5,
                        decimal_places=2,
                        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.25'}),
                    )
                field.label = name.upper()
                field.initial = stored.get(name)
                self.fields[key] = field
        if not self.instance.pk and not self.is_bound:
            self.initial.setdefault('prescription_date', timezone.localdate())

    def eye_rows(self):
        for name in EYE_FIELDS:
            yield name, self[f'od_{name}'], self[f'os_{name}']

    def _eye_params(self, eye: str, rx_type: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for name in PARAMS_BY_TYPE.get(rx_type, ()):
            value = self.cleaned_data.get(f'{eye}_{name}')
            if value in (None, ''):
                params[name] = None
            elif isinstance(value, Decimal):
                params[name] = float(value)
            else:
                params[name] = value
        return params

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        issued = cleaned_data.get('prescription_date')
        expiry = cleaned_data.get('expiry_date')
        if issued and expiry and expiry < issued:
            self.add_error('expiry_date', 'Expiry date cannot be before the prescription date.')
        customer = cleaned_data.get('customer')
        record = cleaned_data.get('medical_record')
        if record and customer and record.customer_id != customer.pk:
            self.add_error('medical_record', 'The medical record belongs to another customer.')
        rx_type = cleaned_data.get('type') or Prescription.Type.GLASSES
        cleaned_data['od_params'] = self._eye_params('od', rx_type)
        cleaned_data['os_params'] = self._eye_params('os', rx_type)
        return cleaned_data

    def save(self, commit: bool = True) -> Prescription:
        self.instance.od_params = self.cleaned_data['od_params']
        self.instance.os_params = self.cleaned_data['os_params']
        return super().save(commit=commit)


class ProductCategoryForm(forms.ModelForm):
    parent = forms.ModelChoiceField(
        queryset=ProductCategory.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    class Meta:
        model = ProductCategory
        fields = ['name', 'parent']
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control'}),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.tenant_ctx = tenant_ctx
        queryset = _scoped(tenant_ctx, ProductCategory.objects.all())
        if self.instance.pk:
            queryset = queryset.exclude(pk=self.instance.pk)
        self.fields['parent'].queryset = queryset

    def clean_name(self) -> str:
        name = self.cleaned_data['name'].strip()
        tenant = getattr(self.tenant_ctx, 'tenant', None)
        if tenant is not None:
            clash = ProductCategory.objects.filter(tenant=tenant, name__iexact=name).exclude(pk=self.instance.pk)
            if clash.exists():
                raise forms.ValidationError('A category with this name already exists.')
        return name


class SupplierForm(forms.ModelForm):
    class Meta:
        model = Supplier
        fields = ['name', 'contact_person', 'email', 'phone', 'address']
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control'}),
            'contact_person': forms.TextInput(attrs={'class': 'form-control'}),
            'email': forms.EmailInput(attrs={'class': 'form-control'}),
            'phone': forms.TextInput(attrs={'class': 'form-control'}),
            'address': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
        }


class ProductForm(forms.ModelForm):
    category = forms.ModelChoiceField(
        queryset=ProductCategory.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    supplier = forms.ModelChoiceField(
        queryset=Supplier.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    class Meta:
        model = Product
        fields = ['name', 'description', 'brand', 'model', 'category', 'supplier', 'base_price', 'reorder_level']
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control'}),
            'description': forms.Textarea(attrs={'class': 'form-control', 'rows': 2}),
            'brand': forms.TextInput(attrs={'class': 'form-control'}),
            'model': forms.TextInput(attrs={'class': 'form-control'}),
            'base_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
            'reorder_level': forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['category'].queryset = _scoped(tenant_ctx, ProductCategory.objects.all())
        self.fields['supplier'].queryset = _scoped(tenant_ctx, Supplier.objects.all())
        if not self.instance.pk and not self.is_bound:
            self.initial.setdefault('reorder_level', settings.OPTICSHOP_LOW_STOCK_DEFAULT)

    def clean_base_price(self):
        price = self.cleaned_data.get('base_price')
        if price is not None and price < 0:
            raise forms.ValidationError('Price cannot be negative.')
        return price


class InventoryItemForm(forms.ModelForm):
    product = forms.ModelChoiceField(queryset=Product.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))

    class Meta:
        model = InventoryItem
        fields = ['product', 'serial_number', 'quantity', 'cost_price', 'purchase_date', 'location', 'status']
        widgets = {
            'serial_number': forms.TextInput(attrs={'class': 'form-control'}),
            'quantity': forms.NumberInput(attrs={'class': 'form-control', 'min': 0}),
            'cost_price': forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
            'purchase_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'location': forms.TextInput(attrs={'class': 'form-control'}),
            'status': forms.Select(attrs={'class': 'form-select'}),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['product'].queryset = _scoped(tenant_ctx, Product.objects.all())

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        serial = (cleaned_data.get('serial_number') or '').strip()
        quantity = cleaned_data.get('quantity')
        if serial and quantity is not None and quantity > 1:
            self.add_error('quantity', 'A serialised item holds a single unit.')
        return cleaned_data


class TaxRateForm(forms.ModelForm):
    """Tax rate entered as a percentage and stored as a fraction."""

    rate_percent = forms.DecimalField(
        label='Rate (%)',
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))],
        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01'}),
    )

    class Meta:
        model = TaxRate
        fields = ['name', 'is_default']
        widgets = {
            'name': forms.TextInput(attrs={'class': 'form-control'}),
            'is_default': forms.CheckboxInput(attrs={'class': 'form-check-input'}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance.pk and not self.is_bound:
            self.initial['rate_percent'] = self.instance.percentage

    def save(self, commit: bool = True) -> TaxRate:
        self.instance.rate = (self.cleaned_data['rate_percent'] / Decimal('100')).quantize(Decimal('0.0001'))
        return super().save(commit=commit)


class PurchaseOrderForm(forms.ModelForm):
    supplier = forms.ModelChoiceField(
        queryset=Supplier.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    status = forms.ChoiceField(
        choices=[
            (PurchaseOrder.Status.DRAFT, 'Draft'),
            (PurchaseOrder.Status.ORDERED, 'Ordered'),
        ],
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    class Meta:
        model = PurchaseOrder
        fields = ['supplier', 'order_date', 'expected_delivery_date', 'status']
        widgets = {
            'order_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
            'expected_delivery_date': forms.DateInput(attrs={'type': 'date', 'class': 'form-control'}, format='%Y-%m-%d'),
        }

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['supplier'].queryset = _scoped(tenant_ctx, Supplier.objects.all())
        if not self.instance.pk and not self.is_bound:
            self.initial.setdefault('order_date', timezone.localdate())

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        ordered = cleaned_data.get('order_date')
        expected = cleaned_data.get('expected_delivery_date')
        if ordered and expected and expected < ordered:
            self.add_error('expected_delivery_date', 'Expected delivery cannot be before the order date.')
        return cleaned_data


class PurchaseOrderLineForm(forms.Form):
    product = forms.ModelChoiceField(queryset=Product.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))
    quantity_ordered = forms.IntegerField(min_value=1, widget=forms.NumberInput(attrs={'class': 'form-control', 'min': 1}))
    unit_price = forms.DecimalField(
        min_value=Decimal('0'),
        max_digits=10,
        decimal_places=2,
        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
    )

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['product'].queryset = _scoped(tenant_ctx, Product.objects.all())


PurchaseOrderLineFormSet = formset_factory(PurchaseOrderLineForm, extra=3, min_num=1, validate_min=True)


class SaleForm(forms.Form):
    customer = forms.ModelChoiceField(
        queryset=Customer.objects.none(),
        required=False,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    discount = forms.DecimalField(
        required=False,
        min_value=Decimal('0'),
        max_digits=10,
        decimal_places=2,
        initial=Decimal('0.00'),
        widget=forms.NumberInput(attrs={'class': 'form-control', 'step': '0.01', 'min': 0}),
    )
    payment_method = forms.ChoiceField(
        choices=Payment.Method.choices,
        initial=Payment.Method.CASH,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'class': 'form-control', 'rows': 2}))

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['customer'].queryset = _scoped(tenant_ctx, Customer.objects.all())


class StockChoiceField(forms.ModelChoiceField):
    def label_from_instance(self, obj: InventoryItem) -> str:
        return f"{obj.label} @ {obj.product.base_price}"


class SaleLineForm(forms.Form):
    inventory_item = StockChoiceField(queryset=InventoryItem.objects.none(), widget=forms.Select(attrs={'class': 'form-select'}))
    quantity = forms.IntegerField(min_value=1, initial=1, widget=forms.NumberInput(attrs={'class': 'form-control', 'min': 1}))

    def __init__(self, *args, tenant_ctx=None, **kwargs):
        super().__init__(*args, **kwargs)
        queryset = InventoryItem.objects.none()
        if tenant_ctx is not None and tenant_ctx.tenant is not None:
            queryset = InventoryItem.objects.filter(
                tenant=tenant_ctx.tenant,
                status=InventoryItem.Status.AVAILABLE,
                quantity__gt=0,
            ).select_related('product')
        self.fields['inventory_item'].queryset = queryset

    def clean(self) -> dict[str, Any]:  # type: ignore[override]
        cleaned_data = super().clean()
        item = cleaned_data.get('inventory_item')
        quantity = cleaned_data.get('quantity')
        if item and quantity and quantity > item.quantity:
            self.add_error('quantity', f'Only {item.quantity} unit(s) in stock.')
        return cleaned_data


SaleLineFormSet = formset_factory(SaleLineForm, extra=3, min_num=1, validate_min=True)
