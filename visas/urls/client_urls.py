from django.urls import path
from ..views import *


urlpatterns = [
    # --- APIs (Used by JavaScript) ---

    # 1. Catalog: visa types with fees & required documents
    path('api/visa-types/', get_visa_types_api, name='api_visa_types'),

    # 2. Draft: read it, pick the visa type, throw it away
    path('api/draft/', get_draft_api, name='api_visa_draft'),
    path('api/visa-type/', select_visa_type_api, name='api_visa_select_type'),
    path('api/discard/', discard_draft_api, name='api_visa_discard'),

    # 3. Steps (1..5) and navigation
    path('api/step/<int:step>/', submit_step_api, name='api_visa_step'),
    path('api/back/', go_back_api, name='api_visa_back'),

    # 4. Documents: streamed upload progress (JSON lines)
    path('api/documents/<str:kind>/', upload_document_api,
         name='api_visa_upload_document'),

    # 5. Final submit
    path('api/submit/', submit_application_api, name='api_visa_submit'),

    path('api/my-applications/', get_client_applications_api,
         name='api_visa_applications'),
]
