"""Django admin configuration for clinic models."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import User

from .models import (
    ActivityLog,
    Appointment,
    ClinicSettings,
    Customer,
    InventoryItem,
    MedicalRecord,
    Notification,
    Prescription,
    Product,
    ProductCategory,
    Profile,
    PurchaseOrder,
    PurchaseOrderItem,
    SalesOrder,
    SalesOrderItem,
    Supplier,
    TaxRate,
    Tenant,
)


class ProfileInline(admin.StackedInline):
    """Allows editing of the Profile model on the same page as the User model."""
    model = Profile
    can_delete = False
    verbose_name_plural = 'profile'


class UserAdmin(BaseUserAdmin):
    """Extend the default User admin to include Profile fields."""
    inlines = (ProfileInline,)


class PurchaseOrderItemInline(admin.TabularInline):
    model = PurchaseOrderItem
    extra = 0


class SalesOrderItemInline(admin.TabularInline):
    model = SalesOrderItem
    extra = 0


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ('name', 'created_at')
    search_fields = ('name',)


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ('last_name', 'first_name', 'email', 'phone', 'tenant')
    list_filter = ('tenant',)
    search_fields = ('first_name', 'last_name', 'email', 'phone')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('customer', 'appointment_time', 'type', 'status', 'provider', 'tenant')
    list_filter = ('tenant', 'status', 'type')


@admin.register(PurchaseOrder)
class PurchaseOrderAdmin(admin.ModelAdmin):
    list_display = ('pk', 'supplier', 'order_date', 'status', 'total_amount', 'tenant')
    list_filter = ('tenant', 'status')
    inlines = (PurchaseOrderItemInline,)


@admin.register(SalesOrder)
class SalesOrderAdmin(admin.ModelAdmin):
    list_display = ('order_number', 'order_date', 'customer', 'status', 'final_amount', 'tenant')
    list_filter = ('tenant', 'status')
    search_fields = ('order_number',)
    inlines = (SalesOrderItemInline,)


admin.site.unregister(User)
admin.site.register(User, UserAdmin)
admin.site.register(ClinicSettings)
admin.site.register(MedicalRecord)
admin.site.register(Prescription)
admin.site.register(ProductCategory)
admin.site.register(Supplier)
admin.site.register(Product)
admin.site.register(InventoryItem)
admin.site.register(TaxRate)
admin.site.register(Notification)
admin.site.register(ActivityLog)
