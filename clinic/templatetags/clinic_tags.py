"""Custom template filters and tags for the clinic app."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from django import template
from django.urls import NoReverseMatch, reverse

register = template.Library()


@register.filter
def get(value, key):
    """Return ``value[key]`` for dictionaries in templates.

    Usage::

        {{ mydict|get:var }}

    Returns an empty string when ``value`` is not dict-like or the key is
    missing.
    """
    if hasattr(value, 'get'):
        return value.get(key, '')
    return ''


@register.filter
def money(value, currency: str = '') -> str:
    """Format a number with two decimals and an optional currency code."""

    if value in (None, ''):
        value = 0
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'))
    except InvalidOperation:
        return str(value)
    text = f'{amount:,.2f}'
    return f'{text} {currency}'.strip()


@register.simple_tag
def localise(lang: str, en: str, es: str) -> str:
    """Pick the English or Spanish label inside templates."""

    return es if lang == 'es' else en


def _resolve_url(name: str | None) -> str:
    """Safely resolve a URL name to its absolute path."""

    if not name:
        return '#'
    try:
        return reverse(name)
    except NoReverseMatch:
        return '#'


@register.inclusion_tag('partials/sidebar_menu.html', takes_context=True)
def render_sidebar(context: Dict[str, Any]) -> Dict[str, Any]:
    """Render the sidebar navigation from a single menu schema."""

    user = context.get('user')
    lang = context.get('lang', 'en')
    request = context.get('request')
    current_path = getattr(request, 'path', '')
    is_admin = bool(context.get('is_clinic_admin'))

    def url_is_active(url: str) -> bool:
        if not url or url == '#' or not current_path:
            return False
        if url == '/':
            return current_path == '/'
        return current_path.rstrip('/').startswith(url.rstrip('/'))

    sections: List[Dict[str, Any]] = [
        {
            'title': None,
            'items': [
                ({'en': 'Dashboard', 'es': 'Panel'}, 'home', True),
            ],
        },
        {
            'title': {'en': 'Patients', 'es': 'Pacientes'},
            'items': [
                ({'en': 'Customers', 'es': 'Clientes'}, 'customer_list', True),
                ({'en': 'Appointments', 'es': 'Citas'}, 'appointment_calendar', True),
                ({'en': 'Medical Records', 'es': 'Historias clínicas'}, 'medical_record_list', True),
                ({'en': 'Prescriptions', 'es': 'Recetas'}, 'prescription_list', True),
            ],
        },
        {
            'title': {'en': 'Store', 'es': 'Tienda'},
            'items': [
                ({'en': 'Point of Sale', 'es': 'Punto de venta'}, 'pos', True),
                ({'en': 'Sales', 'es': 'Ventas'}, 'sales_list', True),
                ({'en': 'Products', 'es': 'Productos'}, 'product_list', True),
                ({'en': 'Inventory', 'es': 'Inventario'}, 'inventory_list', True),
                ({'en': 'Purchase Orders', 'es': 'Órdenes de compra'}, 'purchase_order_list', True),
                ({'en': 'Categories', 'es': 'Categorías'}, 'category_list', True),
                ({'en': 'Suppliers', 'es': 'Proveedores'}, 'supplier_list', True),
                ({'en': 'Reports', 'es': 'Reportes'}, 'reports', True),
            ],
        },
        {
            'title': {'en': 'Administration', 'es': 'Administración'},
            'items': [
                ({'en': 'Users', 'es': 'Usuarios'}, 'user_list', is_admin),
                ({'en': 'Tax Rates', 'es': 'Impuestos'}, 'tax_rate_list', True),
                ({'en': 'Clinic Settings', 'es': 'Configuración'}, 'clinic_settings', is_admin),
                ({'en': 'Activity Log', 'es': 'Registro de actividad'}, 'activity_log', is_admin),
            ],
        },
    ]

    menu = []
    for section in sections:
        items = []
        for labels, url_name, visible in section['items']:
            if not visible:
                continue
            url = _resolve_url(url_name)
            items.append({'label': labels.get(lang, labels['en']), 'url': url, 'active': url_is_active(url)})
        if items:
            title = section['title']
            menu.append({'title': title.get(lang, title['en']) if title else '', 'items': items})
    return {
        'menu': menu,
        'is_authenticated': bool(getattr(user, 'is_authenticated', False)),
    }
