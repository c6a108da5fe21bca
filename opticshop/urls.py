"""Root URL configuration for OpticShop."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('clinic.urls')),
]
