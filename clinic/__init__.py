"""Clinic application for OpticShop.

This package contains the models, views, forms, templates and services that
power the practice management features: customers, appointments, medical
records and prescriptions, inventory, purchasing, sales and reporting.  All
operational data is scoped to a tenant (a clinic); see
``clinic.services.tenancy`` for how a request is bound to one.
"""

default_app_config = 'clinic.apps.ClinicConfig'
