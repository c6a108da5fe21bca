"""Core view functions for OpticShop.

This module implements registration and authentication, the dashboard,
tenant selection, user management and the patient facing panels:
customers, appointments and the calendar, medical records and
prescriptions.  Inventory, purchasing, sales and reports live in
``views_inventory``.  Every view works against the request's
:class:`~clinic.services.tenancy.TenantContext`; object lookups always go
through the scoped queryset so rows of another clinic resolve to 404.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.core.paginator import Paginator
from django.db import DatabaseError, transaction
from django.db.models import Q
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from django.utils.http import url_has_allowed_host_and_scheme
from django.views.decorators.http import require_http_methods, require_POST

from .forms import (
    AppointmentForm,
    ClinicSettingsForm,
    CustomerForm,
    CustomerNoteForm,
    CustomerWorkbookForm,
    LoginForm,
    MedicalRecordForm,
    PrescriptionForm,
    ProfileForm,
    RegistrationForm,
    StaffMemberForm,
)
from .models import (
    ActivityLog,
    Appointment,
    ClinicSettings,
    Customer,
    CustomerNote,
    MedicalRecord,
    Notification,
    Prescription,
    Profile,
    Tenant,
)
from .services import scheduling
from .services.customer_workbook import (
    CustomerWorkbookError,
    export_customers_workbook,
    import_customers_workbook,
)
from .services.notifications import (
    mark_notifications_read,
    notify_appointment_scheduled,
    notify_appointment_updated,
    notify_role_changed,
    serialize_notification,
)
from .services.reports import dashboard_summary
from .services.table_export import TABLE_EXPORT_BUILDERS, filter_rows, render_export
from .services.tenancy import (
    TenantAccessError,
    TenantContext,
    TenantRequiredError,
    resolve_tenant_context,
    select_session_tenant,
)
from .utils import SUPPORTED_LANGUAGES, get_lang, localise_text

logger = logging.getLogger(__name__)

PAGE_SIZE = 25

_localise_text = localise_text
_get_lang = get_lang


def _build_breadcrumbs(lang: str, *segments: Tuple[str, Optional[str]]) -> List[Dict[str, str]]:
    """Construct a breadcrumb trail starting from the dashboard home page."""

    breadcrumbs: List[Dict[str, str]] = [
        {'label': _localise_text(lang, 'Home', 'Inicio'), 'url': reverse('home')}
    ]
    for label, url in segments:
        breadcrumbs.append({'label': label, 'url': url or ''})
    return breadcrumbs


def log_activity(user: Optional[User], action: str, details: str = '', tenant: Optional[Tenant] = None) -> None:
    """Create a log entry recording the specified action.

    Args:
        user: The user who performed the action.
        action: A short description of the action (e.g., "Added customer").
        details: Optional additional information about the action.
        tenant: The clinic the action happened in, when there is one.
    """
    try:
        ActivityLog.objects.create(user=user, tenant=tenant, action=action, details=details)
    except DatabaseError:
        logger.exception('Unable to record activity "%s"', action)


def _is_truthy(value: Any) -> bool:
    """Return True when a POSTed checkbox-like value is affirmative."""

    if value is None:
        return False
    return str(value).strip().lower() in {'1', 'true', 'on', 'yes'}


def _load_json_body(request: HttpRequest) -> Dict[str, Any]:
    try:
        payload = json.loads(request.body.decode('utf-8') or '{}')
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError('Invalid JSON payload.') from exc
    if not isinstance(payload, dict):
        raise ValueError('Expected a JSON object.')
    return payload


def _parse_day(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD``; impossible dates such as Feb 30 give ``None``."""

    if not value:
        return None
    try:
        return parse_date(value.strip())
    except ValueError:
        return None


def _parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Return an aware datetime parsed from an ISO date or datetime string."""

    if not value:
        return None
    value = value.strip().replace(' ', '+') if 'T' in value else value.strip()
    try:
        dt = parse_datetime(value)
    except ValueError:
        return None
    if dt is None:
        day = _parse_day(value)
        if day is None:
            return None
        dt = datetime.combine(day, datetime.min.time())
    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_current_timezone())
    return dt


def _safe_next(request: HttpRequest, target: Optional[str], fallback: str = 'home') -> str:
    """Return ``target`` when it points at this site, otherwise ``fallback``."""

    if target and url_has_allowed_host_and_scheme(
        target, allowed_hosts={request.get_host()}, require_https=request.is_secure()
    ):
        return target
    return reverse(fallback)


def _profile(user: User) -> Optional[Profile]:
    return getattr(user, 'profile', None)


def _is_admin(user: User) -> bool:
    if user.is_superuser:
        return True
    profile = _profile(user)
    return bool(profile and profile.role == Profile.Role.ADMIN)


def _can_edit_clinical(user: User) -> bool:
    """Admins and professionals may write medical records and prescriptions."""

    if _is_admin(user):
        return True
    profile = _profile(user)
    return bool(profile and profile.role == Profile.Role.PROFESSIONAL)


def tenant_required(view_func=None, *, api: bool = False):
    """Require an authenticated user bound to a clinic.

    Resolves ``request.tenant_context`` eagerly.  Accounts without a clinic
    are logged out (HTML views) or receive a 403 JSON error (``api=True``).
    """

    def decorator(func):
        @wraps(func)
        def _wrapped(request: HttpRequest, *args, **kwargs):
            try:
                request.tenant_context = resolve_tenant_context(request)
            except TenantAccessError as exc:
                if api:
                    return JsonResponse({'error': str(exc)}, status=403)
                messages.error(request, str(exc))
                logout(request)
                return redirect('login')
            return func(request, *args, **kwargs)

        return login_required(_wrapped)

    if view_func is not None:
        return decorator(view_func)
    return decorator


def _write_tenant(request: HttpRequest) -> Optional[Tenant]:
    """Return the tenant new rows go into, flashing a message when unset."""

    try:
        return request.tenant_context.require_tenant()
    except TenantRequiredError:
        lang = _get_lang(request)
        messages.warning(
            request,
            _localise_text(
                lang,
                'Select a clinic from the header before creating records.',
                'Seleccione una clínica en el encabezado antes de crear registros.',
            ),
        )
        return None


def _owner_context(obj) -> TenantContext:
    """Context bound to the clinic owning ``obj``.

    Edit forms use it so a superuser browsing every clinic can only pick
    related rows (customers, providers, categories) from that same clinic.
    """

    return TenantContext(tenant=obj.tenant)


def _clinic_settings(ctx) -> Optional[ClinicSettings]:
    if ctx.tenant is None:
        return None
    return ClinicSettings.objects.filter(tenant=ctx.tenant).first()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def register(request: HttpRequest) -> HttpResponse:
    """Register a new clinic together with its first admin account."""
    if request.user.is_authenticated:
        return redirect('home')

    lang = _get_lang(request)
    if request.method == 'POST':
        form = RegistrationForm(request.POST)
        if form.is_valid():
            data = form.cleaned_data
            with transaction.atomic():
                tenant = Tenant.objects.create(name=data['clinic_name'])
                ClinicSettings.objects.create(tenant=tenant)
                user = User.objects.create_user(
                    username=data['email'],
                    email=data['email'],
                    password=data['password'],
                    first_name=data['full_name'],
                )
                Profile.objects.create(user=user, tenant=tenant, role=Profile.Role.ADMIN, phone=data['phone'])
            log_activity(user, 'Registered clinic', tenant.name, tenant)
            messages.success(
                request,
                _localise_text(lang, 'Registration successful. You can now log in.', 'Registro exitoso. Ya puede iniciar sesión.'),
            )
            return redirect('login')
    else:
        form = RegistrationForm()
    return render(request, 'register.html', {'form': form, 'lang': lang, 'breadcrumbs': []})


def login_view(request: HttpRequest) -> HttpResponse:
    """Authenticate a user via email and password."""
    if request.user.is_authenticated:
        return redirect('home')
    lang = _get_lang(request)
    if request.method == 'POST':
        form = LoginForm(request.POST)
        if form.is_valid():
            email = form.cleaned_data['email'].lower()
            password = form.cleaned_data['password']
            user = authenticate(request, username=email, password=password)
            if user:
                login(request, user)
                return redirect(_safe_next(request, request.GET.get('next')))
            messages.error(request, _localise_text(lang, 'Invalid email or password.', 'Correo o contraseña inválidos.'))
    else:
        form = LoginForm()
    return render(request, 'login.html', {'form': form, 'lang': lang, 'breadcrumbs': []})


def logout_view(request: HttpRequest) -> HttpResponse:
    """Log the user out and redirect to the login page."""
    logout(request)
    return redirect('login')


def toggle_language(request: HttpRequest, lang: str) -> HttpResponse:
    """Switch the interface language between English and Spanish."""
    if lang not in SUPPORTED_LANGUAGES:
        lang = 'en'
    request.session['lang'] = lang
    return redirect(_safe_next(request, request.META.get('HTTP_REFERER')))


@tenant_required
def profile_view(request: HttpRequest) -> HttpResponse:
    """Let users update their own name and phone number."""

    lang = _get_lang(request)
    user = request.user
    profile, _ = Profile.objects.get_or_create(user=user)
    if request.method == 'POST':
        form = ProfileForm(request.POST)
        if form.is_valid():
            user.first_name = form.cleaned_data['full_name']
            user.save(update_fields=['first_name'])
            profile.phone = form.cleaned_data['phone']
            profile.save(update_fields=['phone', 'updated_at'])
            messages.success(request, _localise_text(lang, 'Profile updated.', 'Perfil actualizado.'))
            return redirect('profile')
    else:
        form = ProfileForm(initial={'full_name': user.get_full_name() or user.first_name, 'phone': profile.phone})
    return render(
        request,
        'profile.html',
        {
            'form': form,
            'profile': profile,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Profile', 'Perfil'), None)),
        },
    )


# ---------------------------------------------------------------------------
# Dashboard and tenants
# ---------------------------------------------------------------------------


@tenant_required
def home(request: HttpRequest) -> HttpResponse:
    """Dashboard: weekly sales, appointments, low stock and upcoming visits."""
    ctx = request.tenant_context
    lang = _get_lang(request)
    summary = dashboard_summary(ctx)
    return render(
        request,
        'home.html',
        {
            'profile': _profile(request.user),
            'summary': summary,
            'tenant': ctx.tenant,
            'lang': lang,
        },
    )


@login_required
@require_POST
def select_tenant(request: HttpRequest) -> HttpResponse:
    """Store the superuser's clinic choice; an empty value means all clinics."""

    lang = _get_lang(request)
    if not request.user.is_superuser:
        messages.error(request, _localise_text(lang, 'Access denied.', 'Acceso denegado.'))
        return redirect('home')
    tenant_id = request.POST.get('tenant_id') or ''
    tenant = None
    if tenant_id:
        tenant = Tenant.objects.filter(pk=tenant_id).first() if tenant_id.isdigit() else None
        if tenant is None:
            messages.error(request, _localise_text(lang, 'Clinic not found.', 'Clínica no encontrada.'))
            return redirect('home')
    select_session_tenant(request, tenant)
    return redirect(_safe_next(request, request.POST.get('next') or request.META.get('HTTP_REFERER')))


@login_required
@require_http_methods(["GET"])
def api_tenants(request: HttpRequest) -> JsonResponse:
    """List every clinic; restricted to platform superusers."""

    if not request.user.is_superuser:
        return JsonResponse({'error': 'Access denied.'}, status=403)
    tenants = [
        {'id': tenant.pk, 'name': tenant.name, 'created_at': tenant.created_at.isoformat()}
        for tenant in Tenant.objects.order_by('name')
    ]
    return JsonResponse({'tenants': tenants})


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@tenant_required
def user_list(request: HttpRequest) -> HttpResponse:
    """List the clinic's users with their roles (admins and superusers)."""

    lang = _get_lang(request)
    if not _is_admin(request.user):
        messages.warning(request, _localise_text(lang, 'Access denied: admins only.', 'Acceso denegado: solo administradores.'))
        return redirect('home')
    ctx = request.tenant_context
    profiles = ctx.scope(Profile.objects.select_related('user', 'tenant')).order_by('tenant__name', 'user__first_name')
    return render(
        request,
        'users_list.html',
        {
            'profiles': profiles,
            'roles': Profile.Role.choices,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Users', 'Usuarios'), None)),
        },
    )


@tenant_required
def user_add(request: HttpRequest) -> HttpResponse:
    """Create a staff account inside the current clinic."""

    lang = _get_lang(request)
    if not _is_admin(request.user):
        messages.warning(request, _localise_text(lang, 'Access denied: admins only.', 'Acceso denegado: solo administradores.'))
        return redirect('home')
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('user_list')
    if request.method == 'POST':
        form = StaffMemberForm(request.POST)
        if form.is_valid():
            data = form.cleaned_data
            with transaction.atomic():
                user = User.objects.create_user(
                    username=data['email'],
                    email=data['email'],
                    password=data['password'],
                    first_name=data['full_name'],
                )
                Profile.objects.create(user=user, tenant=tenant, role=data['role'])
            log_activity(request.user, 'Added user', f"{user.username} as {data['role']}", tenant)
            messages.success(request, _localise_text(lang, 'User added.', 'Usuario agregado.'))
            return redirect('user_list')
    else:
        form = StaffMemberForm()
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': _localise_text(lang, 'Add User', 'Agregar usuario'),
            'cancel_url': reverse('user_list'),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Users', 'Usuarios'), reverse('user_list')),
                (_localise_text(lang, 'Add', 'Agregar'), None),
            ),
        },
    )


@tenant_required
@require_POST
def user_change_role(request: HttpRequest, user_id: int) -> HttpResponse:
    """Change another user's role.

    The caller must be a clinic admin or a superuser, the target must
    belong to the caller's clinic (superusers may reach any clinic) and the
    role must be one of the known roles.
    """

    lang = _get_lang(request)
    actor = request.user
    if not _is_admin(actor):
        messages.error(request, _localise_text(lang, 'Only admins can change roles.', 'Solo los administradores pueden cambiar roles.'))
        return redirect('home')
    target = get_object_or_404(User.objects.select_related('profile'), pk=user_id)
    profile = _profile(target)
    actor_profile = _profile(actor)
    if profile is None:
        messages.error(request, _localise_text(lang, 'User has no profile.', 'El usuario no tiene perfil.'))
        return redirect('user_list')
    if not actor.is_superuser and (actor_profile is None or profile.tenant_id != actor_profile.tenant_id):
        messages.error(
            request,
            _localise_text(lang, 'You can only change roles in your own clinic.', 'Solo puede cambiar roles en su propia clínica.'),
        )
        return redirect('user_list')
    if target.pk == actor.pk:
        messages.error(request, _localise_text(lang, 'You cannot change your own role.', 'No puede cambiar su propio rol.'))
        return redirect('user_list')
    role = request.POST.get('role', '')
    if role not in Profile.Role.values:
        messages.error(request, _localise_text(lang, 'Invalid role.', 'Rol inválido.'))
        return redirect('user_list')
    if profile.role != role:
        profile.role = role
        profile.save(update_fields=['role', 'updated_at'])
        notify_role_changed(profile, actor=actor)
        log_activity(actor, 'Changed role', f'{target.username} -> {role}', profile.tenant)
    messages.success(request, _localise_text(lang, 'Role updated.', 'Rol actualizado.'))
    return redirect('user_list')


@tenant_required
def activity_log_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    if not _is_admin(request.user):
        messages.warning(request, _localise_text(lang, 'Access denied: admins only.', 'Acceso denegado: solo administradores.'))
        return redirect('home')
    logs = request.tenant_context.scope(ActivityLog.objects.select_related('user', 'tenant'))
    page = Paginator(logs, 50).get_page(request.GET.get('page'))
    return render(
        request,
        'activity_log.html',
        {
            'page': page,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Activity Log', 'Registro de actividad'), None)),
        },
    )


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@tenant_required
def customer_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    customers = request.tenant_context.scope(Customer.objects.all())
    query = (request.GET.get('q') or '').strip()
    if query:
        customers = customers.filter(
            Q(first_name__icontains=query)
            | Q(last_name__icontains=query)
            | Q(email__icontains=query)
            | Q(phone__icontains=query)
        )
    page = Paginator(customers, PAGE_SIZE).get_page(request.GET.get('page'))
    return render(
        request,
        'customers_list.html',
        {
            'page': page,
            'query': query,
            'workbook_form': CustomerWorkbookForm(),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Customers', 'Clientes'), None)),
        },
    )


@tenant_required
def customer_add(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('customer_list')
    if request.method == 'POST':
        form = CustomerForm(request.POST)
        if form.is_valid():
            customer = form.save(commit=False)
            customer.tenant = tenant
            customer.save()
            log_activity(request.user, 'Added customer', f'{customer.pk}: {customer.display_name}', tenant)
            messages.success(request, _localise_text(lang, 'Customer created.', 'Cliente creado.'))
            return redirect('customer_detail', pk=customer.pk)
    else:
        form = CustomerForm()
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': _localise_text(lang, 'New Customer', 'Nuevo cliente'),
            'cancel_url': reverse('customer_list'),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Customers', 'Clientes'), reverse('customer_list')),
                (_localise_text(lang, 'New', 'Nuevo'), None),
            ),
        },
    )


@tenant_required
def customer_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    customer = get_object_or_404(request.tenant_context.scope(Customer.objects.all()), pk=pk)
    if request.method == 'POST':
        form = CustomerForm(request.POST, instance=customer)
        if form.is_valid():
            form.save()
            log_activity(request.user, 'Updated customer', f'{customer.pk}: {customer.display_name}', customer.tenant)
            messages.success(request, _localise_text(lang, 'Customer updated.', 'Cliente actualizado.'))
            return redirect('customer_detail', pk=customer.pk)
    else:
        form = CustomerForm(instance=customer)
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': _localise_text(lang, 'Edit Customer', 'Editar cliente'),
            'cancel_url': reverse('customer_detail', args=[customer.pk]),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Customers', 'Clientes'), reverse('customer_list')),
                (customer.display_name, reverse('customer_detail', args=[customer.pk])),
                (_localise_text(lang, 'Edit', 'Editar'), None),
            ),
        },
    )


@tenant_required
@require_POST
def customer_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    customer = get_object_or_404(request.tenant_context.scope(Customer.objects.all()), pk=pk)
    name = customer.display_name
    tenant = customer.tenant
    customer.delete()
    log_activity(request.user, 'Deleted customer', f'{pk}: {name}', tenant)
    messages.success(request, _localise_text(lang, 'Customer deleted.', 'Cliente eliminado.'))
    return redirect('customer_list')


@tenant_required
def customer_detail(request: HttpRequest, pk: int) -> HttpResponse:
    """Customer record with notes, prescriptions, visits, exams and sales."""

    lang = _get_lang(request)
    customer = get_object_or_404(request.tenant_context.scope(Customer.objects.all()), pk=pk)
    context = {
        'customer': customer,
        'notes': customer.customer_notes.select_related('user'),
        'note_form': CustomerNoteForm(),
        'prescriptions': customer.prescriptions.all(),
        'appointments': customer.appointments.select_related('provider').order_by('-appointment_time'),
        'medical_records': customer.medical_records.select_related('professional'),
        'sales_orders': customer.sales_orders.all(),
        'can_edit_clinical': _can_edit_clinical(request.user),
        'lang': lang,
        'breadcrumbs': _build_breadcrumbs(
            lang,
            (_localise_text(lang, 'Customers', 'Clientes'), reverse('customer_list')),
            (customer.display_name, None),
        ),
    }
    return render(request, 'customer_detail.html', context)


@tenant_required
@require_POST
def customer_note_add(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    customer = get_object_or_404(request.tenant_context.scope(Customer.objects.all()), pk=pk)
    form = CustomerNoteForm(request.POST)
    if form.is_valid():
        note = form.save(commit=False)
        note.tenant = customer.tenant
        note.customer = customer
        note.user = request.user
        note.save()
        messages.success(request, _localise_text(lang, 'Note added.', 'Nota agregada.'))
    else:
        messages.error(request, _localise_text(lang, 'The note cannot be empty.', 'La nota no puede estar vacía.'))
    return redirect('customer_detail', pk=customer.pk)


@tenant_required
@require_POST
def customer_note_delete(request: HttpRequest, pk: int, note_id: int) -> HttpResponse:
    lang = _get_lang(request)
    note = get_object_or_404(
        request.tenant_context.scope(CustomerNote.objects.all()),
        pk=note_id,
        customer_id=pk,
    )
    if note.user_id != request.user.pk and not _is_admin(request.user):
        messages.error(request, _localise_text(lang, 'You can only delete your own notes.', 'Solo puede eliminar sus propias notas.'))
        return redirect('customer_detail', pk=pk)
    note.delete()
    messages.success(request, _localise_text(lang, 'Note deleted.', 'Nota eliminada.'))
    return redirect('customer_detail', pk=pk)


@tenant_required
def customer_export_workbook(request: HttpRequest) -> HttpResponse:
    """Stream the customer workbook for the active clinic."""

    customers = request.tenant_context.scope(Customer.objects.all()).order_by('last_name', 'first_name')
    workbook_stream = export_customers_workbook(customers)
    filename = timezone.now().strftime('customers-%Y%m%d%H%M%S.xlsx')
    response = HttpResponse(
        workbook_stream.getvalue(),
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


@tenant_required
@require_POST
def customer_import_workbook(request: HttpRequest) -> HttpResponse:
    """Handle workbook uploads and delegate to the import helper."""

    lang = _get_lang(request)
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('customer_list')
    form = CustomerWorkbookForm(request.POST, request.FILES)
    if not form.is_valid():
        messages.error(
            request,
            _localise_text(lang, 'Please upload a valid Excel workbook.', 'Cargue un archivo de Excel válido.'),
        )
        return redirect('customer_list')
    try:
        result = import_customers_workbook(form.cleaned_data['workbook'], tenant=tenant)
    except CustomerWorkbookError as exc:
        messages.error(request, _localise_text(lang, 'Import failed:', 'La importación falló:') + f' {exc}')
        return redirect('customer_list')
    if result.created:
        messages.success(
            request,
            _localise_text(
                lang,
                f'Created {result.created} customers from the workbook.',
                f'Se crearon {result.created} clientes desde el archivo.',
            ),
        )
    if result.updated:
        messages.info(
            request,
            _localise_text(
                lang,
                f'Updated {result.updated} existing customers.',
                f'Se actualizaron {result.updated} clientes existentes.',
            ),
        )
    if result.errors:
        preview = '; '.join(result.errors[:5])
        messages.warning(
            request,
            _localise_text(lang, f'Some rows were skipped: {preview}', f'Algunas filas se omitieron: {preview}'),
        )
    log_activity(request.user, 'Imported customers', f'created={result.created} updated={result.updated}', tenant)
    return redirect('customer_list')


# ---------------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------------


@tenant_required
def appointment_calendar(request: HttpRequest) -> HttpResponse:
    """Week (default) or day agenda with the clinic's slot grid."""

    lang = _get_lang(request)
    ctx = request.tenant_context
    anchor = _parse_day(request.GET.get('date')) or timezone.localdate()
    mode = 'day' if request.GET.get('view') == 'day' else 'week'
    first_day = anchor if mode == 'day' else scheduling.week_start(anchor)
    day_count = 1 if mode == 'day' else 7
    clinic_settings = _clinic_settings(ctx)

    range_start = timezone.make_aware(datetime.combine(first_day, datetime.min.time()))
    range_end = range_start + timedelta(days=day_count)
    appointments = list(
        ctx.scope(Appointment.objects.select_related('customer', 'provider')).filter(
            appointment_time__gte=range_start,
            appointment_time__lt=range_end,
        )
    )
    days = []
    for offset in range(day_count):
        day = first_day + timedelta(days=offset)
        day_appointments = [a for a in appointments if timezone.localtime(a.appointment_time).date() == day]
        lower, upper = scheduling.calendar_bounds(clinic_settings, day)
        days.append(
            {
                'date': day,
                'bounds': (lower, upper),
                'appointments': day_appointments,
                'slots': scheduling.day_slots(clinic_settings, day, day_appointments),
                'is_today': day == timezone.localdate(),
            }
        )
    step = timedelta(days=day_count)
    return render(
        request,
        'appointments_calendar.html',
        {
            'days': days,
            'mode': mode,
            'anchor': anchor,
            'previous_date': first_day - step,
            'next_date': first_day + step,
            'slot_minutes': scheduling.default_duration(clinic_settings),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Appointments', 'Citas'), None)),
        },
    )


def _warn_about_schedule(request: HttpRequest, form: AppointmentForm) -> None:
    lang = _get_lang(request)
    if form.overlap_warnings:
        labels = ', '.join(
            f"{appt.customer.display_name} {timezone.localtime(appt.appointment_time):%H:%M}"
            for appt in form.overlap_warnings
        )
        messages.warning(
            request,
            _localise_text(lang, f'Overlaps with: {labels}', f'Se superpone con: {labels}'),
        )
    if form.outside_hours:
        messages.warning(
            request,
            _localise_text(lang, 'The appointment is outside working hours.', 'La cita está fuera del horario de atención.'),
        )


def _appointment_form_response(request: HttpRequest, form: AppointmentForm, title: str) -> HttpResponse:
    lang = _get_lang(request)
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': title,
            'cancel_url': reverse('appointment_calendar'),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Appointments', 'Citas'), reverse('appointment_calendar')),
                (title, None),
            ),
        },
    )


@tenant_required
def appointment_add(request: HttpRequest) -> HttpResponse:
    """Book an appointment, optionally pre-filled from a calendar slot."""

    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('appointment_calendar')
    clinic_settings = _clinic_settings(ctx)
    if request.method == 'POST':
        form = AppointmentForm(request.POST, tenant_ctx=ctx, clinic_settings=clinic_settings)
        if form.is_valid():
            appointment = form.save(commit=False)
            appointment.tenant = tenant
            appointment.save()
            _warn_about_schedule(request, form)
            notify_appointment_scheduled(appointment, actor=request.user)
            log_activity(request.user, 'Scheduled appointment', f'{appointment.pk}: {scheduling.event_title(appointment)}', tenant)
            messages.success(request, _localise_text(lang, 'Appointment scheduled.', 'Cita agendada.'))
            local_day = timezone.localtime(appointment.appointment_time).date()
            return redirect(f"{reverse('appointment_calendar')}?date={local_day.isoformat()}")
    else:
        initial: Dict[str, Any] = {}
        start = _parse_iso_datetime(request.GET.get('start'))
        if start:
            initial['appointment_time'] = timezone.localtime(start)
        customer_id = request.GET.get('customer')
        if customer_id and customer_id.isdigit():
            initial['customer'] = ctx.scope(Customer.objects.all()).filter(pk=customer_id).first()
        form = AppointmentForm(initial=initial, tenant_ctx=ctx, clinic_settings=clinic_settings)
    return _appointment_form_response(request, form, _localise_text(lang, 'New Appointment', 'Nueva cita'))


@tenant_required
def appointment_edit(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    ctx = request.tenant_context
    appointment = get_object_or_404(ctx.scope(Appointment.objects.select_related('customer')), pk=pk)
    clinic_settings = ClinicSettings.objects.filter(tenant_id=appointment.tenant_id).first()
    if request.method == 'POST':
        previous_time = appointment.appointment_time
        form = AppointmentForm(request.POST, instance=appointment, tenant_ctx=_owner_context(appointment), clinic_settings=clinic_settings)
        if form.is_valid():
            if form.cleaned_data['appointment_time'] != previous_time:
                form.instance.reminder_sent = False
            appointment = form.save()
            _warn_about_schedule(request, form)
            notify_appointment_updated(appointment, actor=request.user)
            log_activity(request.user, 'Updated appointment', f'{appointment.pk}: {appointment.status}', appointment.tenant)
            messages.success(request, _localise_text(lang, 'Appointment updated.', 'Cita actualizada.'))
            local_day = timezone.localtime(appointment.appointment_time).date()
            return redirect(f"{reverse('appointment_calendar')}?date={local_day.isoformat()}")
    else:
        form = AppointmentForm(instance=appointment, tenant_ctx=_owner_context(appointment), clinic_settings=clinic_settings)
    return _appointment_form_response(request, form, _localise_text(lang, 'Edit Appointment', 'Editar cita'))


@tenant_required
@require_POST
def appointment_delete(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    appointment = get_object_or_404(request.tenant_context.scope(Appointment.objects.all()), pk=pk)
    tenant = appointment.tenant
    appointment.delete()
    log_activity(request.user, 'Deleted appointment', str(pk), tenant)
    messages.success(request, _localise_text(lang, 'Appointment deleted.', 'Cita eliminada.'))
    return redirect('appointment_calendar')


@tenant_required(api=True)
@require_http_methods(["GET"])
def api_appointments(request: HttpRequest) -> JsonResponse:
    """Calendar events between ``start`` and ``end`` (ISO dates or datetimes)."""

    ctx = request.tenant_context
    raw_start = request.GET.get('start')
    raw_end = request.GET.get('end')
    start = _parse_iso_datetime(raw_start)
    end = _parse_iso_datetime(raw_end)
    if (raw_start and start is None) or (raw_end and end is None):
        return JsonResponse({'error': 'start and end must be ISO dates or datetimes.'}, status=400)
    if start is None or end is None:
        today = timezone.localdate()
        start = timezone.make_aware(datetime.combine(scheduling.week_start(today), datetime.min.time()))
        end = start + timedelta(days=7)
    if end <= start:
        return JsonResponse({'error': 'end must be after start.'}, status=400)
    appointments = ctx.scope(Appointment.objects.select_related('customer', 'provider')).filter(
        appointment_time__gte=start,
        appointment_time__lt=end,
    )
    include_cancelled = _is_truthy(request.GET.get('include_cancelled'))
    if not include_cancelled:
        appointments = appointments.exclude(status=Appointment.Status.CANCELLED)
    return JsonResponse({'events': [scheduling.serialize_event(appt) for appt in appointments]})


@tenant_required(api=True)
@require_http_methods(["GET"])
def api_appointment_slots(request: HttpRequest) -> JsonResponse:
    """Slot grid for one day with busy flags."""

    ctx = request.tenant_context
    raw_date = request.GET.get('date')
    day = _parse_day(raw_date) if raw_date else timezone.localdate()
    if day is None:
        return JsonResponse({'error': 'date must use YYYY-MM-DD.'}, status=400)
    clinic_settings = _clinic_settings(ctx)
    lower, upper = scheduling.calendar_bounds(clinic_settings, day)
    appointments = ctx.scope(Appointment.objects.all()).filter(
        appointment_time__gte=lower - timedelta(days=1),
        appointment_time__lt=upper,
    )
    slots = scheduling.day_slots(clinic_settings, day, appointments)
    return JsonResponse(
        {
            'date': day.isoformat(),
            'slot_minutes': scheduling.default_duration(clinic_settings),
            'bounds': {'start': lower.isoformat(), 'end': upper.isoformat()},
            'slots': [slot.as_dict() for slot in slots],
        }
    )


@tenant_required
def clinic_settings_view(request: HttpRequest) -> HttpResponse:
    """Edit the slot length and working hours of the active clinic."""

    lang = _get_lang(request)
    if not _is_admin(request.user):
        messages.warning(request, _localise_text(lang, 'Access denied: admins only.', 'Acceso denegado: solo administradores.'))
        return redirect('home')
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('home')
    settings_obj, _ = ClinicSettings.objects.get_or_create(tenant=tenant)
    if request.method == 'POST':
        form = ClinicSettingsForm(request.POST, instance=settings_obj)
        if form.is_valid():
            form.save()
            log_activity(request.user, 'Updated clinic settings', json.dumps(settings_obj.working_hours), tenant)
            messages.success(request, _localise_text(lang, 'Settings saved.', 'Configuración guardada.'))
            return redirect('clinic_settings')
    else:
        form = ClinicSettingsForm(instance=settings_obj)
    return render(
        request,
        'clinic_settings.html',
        {
            'form': form,
            'tenant': tenant,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Settings', 'Configuración'), None)),
        },
    )


# ---------------------------------------------------------------------------
# Medical records and prescriptions
# ---------------------------------------------------------------------------


def _customer_filter(request: HttpRequest, queryset):
    customer = None
    customer_id = request.GET.get('customer')
    if customer_id and customer_id.isdigit():
        customer = request.tenant_context.scope(Customer.objects.all()).filter(pk=customer_id).first()
        if customer is not None:
            queryset = queryset.filter(customer=customer)
    return queryset, customer


def _deny_clinical(request: HttpRequest) -> Optional[HttpResponse]:
    if _can_edit_clinical(request.user):
        return None
    lang = _get_lang(request)
    messages.warning(
        request,
        _localise_text(lang, 'Only professionals can change clinical records.', 'Solo los profesionales pueden modificar registros clínicos.'),
    )
    return redirect('home')


@tenant_required
def medical_record_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    records = request.tenant_context.scope(MedicalRecord.objects.select_related('customer', 'professional'))
    records, customer = _customer_filter(request, records)
    return render(
        request,
        'medical_records_list.html',
        {
            'page': Paginator(records, PAGE_SIZE).get_page(request.GET.get('page')),
            'customer': customer,
            'can_edit_clinical': _can_edit_clinical(request.user),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Medical Records', 'Historias clínicas'), None)),
        },
    )


def _clinical_form_page(request: HttpRequest, form, title: str, list_url_name: str) -> HttpResponse:
    lang = _get_lang(request)
    return render(
        request,
        'form.html',
        {
            'form': form,
            'title': title,
            'cancel_url': reverse(list_url_name),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (title, None)),
        },
    )


@tenant_required
def medical_record_add(request: HttpRequest) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('medical_record_list')
    if request.method == 'POST':
        form = MedicalRecordForm(request.POST, tenant_ctx=ctx)
        if form.is_valid():
            record = form.save(commit=False)
            record.tenant = tenant
            record.save()
            log_activity(request.user, 'Added medical record', f'{record.pk} for customer {record.customer_id}', tenant)
            messages.success(request, _localise_text(lang, 'Medical record saved.', 'Historia clínica guardada.'))
            return redirect('customer_detail', pk=record.customer_id)
    else:
        initial: Dict[str, Any] = {'professional': request.user}
        customer_id = request.GET.get('customer')
        if customer_id and customer_id.isdigit():
            initial['customer'] = ctx.scope(Customer.objects.all()).filter(pk=customer_id).first()
        form = MedicalRecordForm(initial=initial, tenant_ctx=ctx)
    return _clinical_form_page(request, form, _localise_text(lang, 'New Medical Record', 'Nueva historia clínica'), 'medical_record_list')


@tenant_required
def medical_record_edit(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    ctx = request.tenant_context
    record = get_object_or_404(ctx.scope(MedicalRecord.objects.all()), pk=pk)
    if request.method == 'POST':
        form = MedicalRecordForm(request.POST, instance=record, tenant_ctx=_owner_context(record))
        if form.is_valid():
            form.save()
            log_activity(request.user, 'Updated medical record', str(record.pk), record.tenant)
            messages.success(request, _localise_text(lang, 'Medical record updated.', 'Historia clínica actualizada.'))
            return redirect('customer_detail', pk=record.customer_id)
    else:
        form = MedicalRecordForm(instance=record, tenant_ctx=_owner_context(record))
    return _clinical_form_page(request, form, _localise_text(lang, 'Edit Medical Record', 'Editar historia clínica'), 'medical_record_list')


@tenant_required
@require_POST
def medical_record_delete(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    record = get_object_or_404(request.tenant_context.scope(MedicalRecord.objects.all()), pk=pk)
    tenant = record.tenant
    record.delete()
    log_activity(request.user, 'Deleted medical record', str(pk), tenant)
    messages.success(request, _localise_text(lang, 'Medical record deleted.', 'Historia clínica eliminada.'))
    return redirect('medical_record_list')


@tenant_required
def prescription_list(request: HttpRequest) -> HttpResponse:
    lang = _get_lang(request)
    prescriptions = request.tenant_context.scope(Prescription.objects.select_related('customer'))
    prescriptions, customer = _customer_filter(request, prescriptions)
    return render(
        request,
        'prescriptions_list.html',
        {
            'page': Paginator(prescriptions, PAGE_SIZE).get_page(request.GET.get('page')),
            'customer': customer,
            'can_edit_clinical': _can_edit_clinical(request.user),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(lang, (_localise_text(lang, 'Prescriptions', 'Recetas'), None)),
        },
    )


def _prescription_form_page(request: HttpRequest, form: PrescriptionForm, title: str) -> HttpResponse:
    lang = _get_lang(request)
    return render(
        request,
        'prescription_form.html',
        {
            'form': form,
            'title': title,
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Prescriptions', 'Recetas'), reverse('prescription_list')),
                (title, None),
            ),
        },
    )


@tenant_required
def prescription_add(request: HttpRequest) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    ctx = request.tenant_context
    tenant = _write_tenant(request)
    if tenant is None:
        return redirect('prescription_list')
    if request.method == 'POST':
        form = PrescriptionForm(request.POST, tenant_ctx=ctx)
        if form.is_valid():
            prescription = form.save(commit=False)
            prescription.tenant = tenant
            prescription.prescriber = request.user
            if not prescription.prescriber_name:
                prescription.prescriber_name = request.user.get_full_name() or request.user.username
            prescription.save()
            log_activity(request.user, 'Added prescription', f'{prescription.pk} for customer {prescription.customer_id}', tenant)
            messages.success(request, _localise_text(lang, 'Prescription saved.', 'Receta guardada.'))
            return redirect('prescription_detail', pk=prescription.pk)
    else:
        initial: Dict[str, Any] = {}
        customer_id = request.GET.get('customer')
        if customer_id and customer_id.isdigit():
            initial['customer'] = ctx.scope(Customer.objects.all()).filter(pk=customer_id).first()
        form = PrescriptionForm(initial=initial, tenant_ctx=ctx)
    return _prescription_form_page(request, form, _localise_text(lang, 'New Prescription', 'Nueva receta'))


@tenant_required
def prescription_edit(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    ctx = request.tenant_context
    prescription = get_object_or_404(ctx.scope(Prescription.objects.all()), pk=pk)
    if request.method == 'POST':
        form = PrescriptionForm(request.POST, instance=prescription, tenant_ctx=_owner_context(prescription))
        if form.is_valid():
            form.save()
            log_activity(request.user, 'Updated prescription', str(prescription.pk), prescription.tenant)
            messages.success(request, _localise_text(lang, 'Prescription updated.', 'Receta actualizada.'))
            return redirect('prescription_detail', pk=prescription.pk)
    else:
        form = PrescriptionForm(instance=prescription, tenant_ctx=_owner_context(prescription))
    return _prescription_form_page(request, form, _localise_text(lang, 'Edit Prescription', 'Editar receta'))


@tenant_required
@require_POST
def prescription_delete(request: HttpRequest, pk: int) -> HttpResponse:
    denied = _deny_clinical(request)
    if denied:
        return denied
    lang = _get_lang(request)
    prescription = get_object_or_404(request.tenant_context.scope(Prescription.objects.all()), pk=pk)
    tenant = prescription.tenant
    prescription.delete()
    log_activity(request.user, 'Deleted prescription', str(pk), tenant)
    messages.success(request, _localise_text(lang, 'Prescription deleted.', 'Receta eliminada.'))
    return redirect('prescription_list')


@tenant_required
def prescription_detail(request: HttpRequest, pk: int) -> HttpResponse:
    lang = _get_lang(request)
    prescription = get_object_or_404(
        request.tenant_context.scope(Prescription.objects.select_related('customer', 'medical_record', 'prescriber')),
        pk=pk,
    )
    names = [name for name in ('sph', 'cyl', 'axis', 'add', 'prism', 'bc', 'dia', 'brand')
             if name in prescription.od_params or name in prescription.os_params]
    rows = [(name.upper(), prescription.od_params.get(name), prescription.os_params.get(name)) for name in names]
    return render(
        request,
        'prescription_detail.html',
        {
            'prescription': prescription,
            'rows': rows,
            'can_edit_clinical': _can_edit_clinical(request.user),
            'lang': lang,
            'breadcrumbs': _build_breadcrumbs(
                lang,
                (_localise_text(lang, 'Prescriptions', 'Recetas'), reverse('prescription_list')),
                (str(prescription.pk), None),
            ),
        },
    )


# ---------------------------------------------------------------------------
# Notifications and exports
# ---------------------------------------------------------------------------


@login_required
@require_http_methods(["GET"])
def notifications_unread(request: HttpRequest) -> JsonResponse:
    """Return unread notifications for the current user."""

    lang = _get_lang(request)
    unread_qs = Notification.objects.filter(recipient=request.user, is_read=False).order_by('-created_at')
    total = unread_qs.count()
    items = [serialize_notification(note, lang) for note in unread_qs[:50]]
    return JsonResponse({'notifications': items, 'count': total})


@login_required
@require_http_methods(["POST"])
def notifications_mark_read(request: HttpRequest) -> JsonResponse:
    """Mark notifications as read for the current user."""

    try:
        payload = _load_json_body(request)
    except ValueError:
        return JsonResponse({'ok': False, 'message': 'Invalid payload.'}, status=400)

    if payload.get('all'):
        updated = mark_notifications_read(request.user, None)
    else:
        ids = payload.get('ids')
        if not isinstance(ids, list):
            return JsonResponse({'ok': False, 'message': 'No notifications specified.'}, status=400)
        try:
            id_list = [int(value) for value in ids]
        except (TypeError, ValueError):
            return JsonResponse({'ok': False, 'message': 'Invalid notification identifiers.'}, status=400)
        updated = mark_notifications_read(request.user, id_list)

    return JsonResponse({'ok': True, 'updated': updated})


@tenant_required(api=True)
@require_http_methods(["POST"])
def table_export(request: HttpRequest) -> HttpResponse:
    """Return a CSV or Excel export for supported interactive tables."""

    lang = _get_lang(request)
    try:
        payload = _load_json_body(request)
    except ValueError:
        message = _localise_text(lang, 'Invalid export payload.', 'Datos de exportación inválidos.')
        return JsonResponse({'error': message}, status=400)
    context_name = payload.get('context')
    if not context_name:
        message = _localise_text(lang, 'Table context is required.', 'Se requiere el contexto de la tabla.')
        return JsonResponse({'error': message}, status=400)
    builder = TABLE_EXPORT_BUILDERS.get(context_name)
    if not builder:
        message = _localise_text(lang, 'This table cannot be exported yet.', 'Esta tabla no se puede exportar.')
        return JsonResponse({'error': message}, status=400)
    export_format = (payload.get('format') or 'csv').lower()
    if export_format not in ('csv', 'xlsx'):
        message = _localise_text(lang, 'Unsupported export format.', 'Formato de exportación no soportado.')
        return JsonResponse({'error': message}, status=400)
    params = payload.get('params') if isinstance(payload.get('params'), dict) else {}
    filters = payload.get('filters') if isinstance(payload.get('filters'), dict) else {}
    dataset = builder(request.tenant_context, lang, params)
    dataset['rows'] = filter_rows(dataset['rows'], dataset['columns'], str(filters.get('global') or ''))
    return render_export(dataset, export_format)
