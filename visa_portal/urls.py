"""
URL configuration for visa_portal project.
"""

from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

# ======================
# URL Patterns
# ======================


urlpatterns = [
    # Django admin
    path("admin/", admin.site.urls),
]

admin_urls = [
    #   VISA URLS (Back office)
    path('admin_panel/', include('visas.urls.urls')),
]
urlpatterns += admin_urls

client_urls = [
    path('visas/', include('visas.urls.client_urls')),
]
urlpatterns += client_urls

# ======================
# Static & Media
# ======================

if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL,
                          document_root=settings.STATIC_ROOT)
    urlpatterns += static(settings.MEDIA_URL,
                          document_root=settings.MEDIA_ROOT)
