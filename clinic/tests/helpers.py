"""Shared fixtures for the clinic tests."""

from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import User

from clinic.models import ClinicSettings, Customer, InventoryItem, Product, Profile, Tenant


def make_tenant(name: str = 'Vista Optical', **settings_kwargs) -> Tenant:
    tenant = Tenant.objects.create(name=name)
    ClinicSettings.objects.create(tenant=tenant, **settings_kwargs)
    return tenant


def make_user(email: str, tenant: Tenant | None, role: str = Profile.Role.ADMIN, **kwargs) -> User:
    user = User.objects.create_user(email, email=email, password='secret123', **kwargs)
    Profile.objects.create(user=user, tenant=tenant, role=role)
    return user


def make_customer(tenant: Tenant, first: str = 'Ana', last: str = 'Lopez', **kwargs) -> Customer:
    return Customer.objects.create(tenant=tenant, first_name=first, last_name=last, **kwargs)


def make_stock(tenant: Tenant, name: str = 'Frame', price: str = '100.00', quantity: int = 1, **product_kwargs):
    product = Product.objects.create(tenant=tenant, name=name, base_price=Decimal(price), **product_kwargs)
    item = InventoryItem.objects.create(tenant=tenant, product=product, quantity=quantity)
    return product, item
