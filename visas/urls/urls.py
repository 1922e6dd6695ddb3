from django.urls import path
from ..views import *


urlpatterns = [
    path("api/visa/list/", get_admin_visa_list_api,
         name="api_admin_visa_list"),
    path("api/visa/<int:app_id>/",
         get_visa_details, name="api_visa_details"),
]
