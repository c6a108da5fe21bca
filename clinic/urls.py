"""URL declarations for the clinic application.

Patient facing panels (customers, appointments, clinical records) are
served by ``views``; stock, purchasing, sales and reports by
``views_inventory``.  JSON endpoints live under ``api/``.
"""

from django.urls import path

from . import views
# Stock and sales views import helpers from ``views``
from . import views_inventory as inv

urlpatterns = [
    # Authentication
    path('login/', views.login_view, name='login'),
    path('logout/', views.logout_view, name='logout'),
    path('register/', views.register, name='register'),
    path('profile/', views.profile_view, name='profile'),
    # Language toggle
    path('lang/<str:lang>/', views.toggle_language, name='toggle_language'),
    # Home dashboard
    path('', views.home, name='home'),
    # Tenant selection (superusers)
    path('tenants/select/', views.select_tenant, name='select_tenant'),
    path('api/tenants/', views.api_tenants, name='api_tenants'),
    # User management
    path('users/', views.user_list, name='user_list'),
    path('users/add/', views.user_add, name='user_add'),
    path('users/<int:user_id>/role/', views.user_change_role, name='user_change_role'),
    path('activity/', views.activity_log_list, name='activity_log'),
    # Customers
    path('customers/', views.customer_list, name='customer_list'),
    path('customers/add/', views.customer_add, name='customer_add'),
    path('customers/export-workbook/', views.customer_export_workbook, name='customer_export_workbook'),
    path('customers/import-workbook/', views.customer_import_workbook, name='customer_import_workbook'),
    path('customers/<int:pk>/', views.customer_detail, name='customer_detail'),
    path('customers/<int:pk>/edit/', views.customer_edit, name='customer_edit'),
    path('customers/<int:pk>/delete/', views.customer_delete, name='customer_delete'),
    path('customers/<int:pk>/notes/add/', views.customer_note_add, name='customer_note_add'),
    path('customers/<int:pk>/notes/<int:note_id>/delete/', views.customer_note_delete, name='customer_note_delete'),
    # Appointments
    path('appointments/', views.appointment_calendar, name='appointment_calendar'),
    path('appointments/add/', views.appointment_add, name='appointment_add'),
    path('appointments/<int:pk>/edit/', views.appointment_edit, name='appointment_edit'),
    path('appointments/<int:pk>/delete/', views.appointment_delete, name='appointment_delete'),
    path('api/appointments/', views.api_appointments, name='api_appointments'),
    path('api/appointments/slots/', views.api_appointment_slots, name='api_appointment_slots'),
    path('settings/', views.clinic_settings_view, name='clinic_settings'),
    # Medical records and prescriptions
    path('medical-records/', views.medical_record_list, name='medical_record_list'),
    path('medical-records/add/', views.medical_record_add, name='medical_record_add'),
    path('medical-records/<int:pk>/edit/', views.medical_record_edit, name='medical_record_edit'),
    path('medical-records/<int:pk>/delete/', views.medical_record_delete, name='medical_record_delete'),
    path('prescriptions/', views.prescription_list, name='prescription_list'),
    path('prescriptions/add/', views.prescription_add, name='prescription_add'),
    path('prescriptions/<int:pk>/', views.prescription_detail, name='prescription_detail'),
    path('prescriptions/<int:pk>/edit/', views.prescription_edit, name='prescription_edit'),
    path('prescriptions/<int:pk>/delete/', views.prescription_delete, name='prescription_delete'),
    # Inventory
    path('products/', inv.product_list, name='product_list'),
    path('products/add/', inv.product_add, name='product_add'),
    path('products/<int:pk>/edit/', inv.product_edit, name='product_edit'),
    path('products/<int:pk>/delete/', inv.product_delete, name='product_delete'),
    path('inventory/', inv.inventory_list, name='inventory_list'),
    path('inventory/add/', inv.inventory_add, name='inventory_add'),
    path('inventory/<int:pk>/edit/', inv.inventory_edit, name='inventory_edit'),
    path('inventory/<int:pk>/delete/', inv.inventory_delete, name='inventory_delete'),
    path('categories/', inv.category_list, name='category_list'),
    path('categories/add/', inv.category_add, name='category_add'),
    path('categories/<int:pk>/edit/', inv.category_edit, name='category_edit'),
    path('categories/<int:pk>/delete/', inv.category_delete, name='category_delete'),
    path('suppliers/', inv.supplier_list, name='supplier_list'),
    path('suppliers/add/', inv.supplier_add, name='supplier_add'),
    path('suppliers/<int:pk>/edit/', inv.supplier_edit, name='supplier_edit'),
    path('suppliers/<int:pk>/delete/', inv.supplier_delete, name='supplier_delete'),
    path('tax-rates/', inv.tax_rate_list, name='tax_rate_list'),
    path('tax-rates/add/', inv.tax_rate_add, name='tax_rate_add'),
    path('tax-rates/<int:pk>/edit/', inv.tax_rate_edit, name='tax_rate_edit'),
    path('tax-rates/<int:pk>/default/', inv.tax_rate_set_default, name='tax_rate_set_default'),
    path('tax-rates/<int:pk>/delete/', inv.tax_rate_delete, name='tax_rate_delete'),
    # Purchase orders
    path('purchase-orders/', inv.purchase_order_list, name='purchase_order_list'),
    path('purchase-orders/add/', inv.purchase_order_add, name='purchase_order_add'),
    path('purchase-orders/<int:pk>/', inv.purchase_order_detail, name='purchase_order_detail'),
    path('purchase-orders/<int:pk>/receive/', inv.purchase_order_receive, name='purchase_order_receive'),
    path('purchase-orders/<int:pk>/cancel/', inv.purchase_order_cancel, name='purchase_order_cancel'),
    path('api/purchase-orders/', inv.api_purchase_orders, name='api_purchase_orders'),
    path('api/purchase-orders/<int:pk>/', inv.api_purchase_order_detail, name='api_purchase_order_detail'),
    path('api/purchase-orders/<int:pk>/receive/', inv.api_purchase_order_receive, name='api_purchase_order_receive'),
    # Sales
    path('sales/', inv.sales_list, name='sales_list'),
    path('sales/new/', inv.pos, name='pos'),
    path('sales/<int:pk>/', inv.sale_detail, name='sale_detail'),
    # Reports
    path('reports/', inv.reports, name='reports'),
    path('api/reports/sales-over-time/', inv.api_report_sales_over_time, name='api_report_sales_over_time'),
    path('api/reports/low-stock-items/', inv.api_report_low_stock, name='api_report_low_stock'),
    path('api/reports/detailed-sales/', inv.api_report_detailed_sales, name='api_report_detailed_sales'),
    path('api/table-export/', views.table_export, name='table_export'),
    # Notifications
    path('api/notifications/unread/', views.notifications_unread, name='notifications_unread'),
    path('api/notifications/mark-read/', views.notifications_mark_read, name='notifications_mark_read'),
]
