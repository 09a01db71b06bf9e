"""
Main URL mapping configuration file.

The HTTP API lives outside this project; only the admin site is
routed here for operators.
"""

from django.contrib import admin
from django.urls import path

admin.autodiscover()

urlpatterns = [
    path('admin/', admin.site.urls),
]
