import json
import logging

from django.contrib.auth.decorators import login_required, permission_required
from django.core.paginator import Paginator
from django.db.models import Q
from django.http import JsonResponse, StreamingHttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from .choices import (DOCUMENT_DESCRIPTIONS, DocumentKind, required_documents,
                      visa_fee)
from .exceptions import (DraftSubmittedError, SessionIntegrityError,
                         SubmissionPreconditionError, SyncError,
                         VisaWorkflowError)
from .models import VisaApplication, VisaType
from .services.applications import serialize_document
from .services.draft_store import STEP_COUNT
from .services.session import ApplicationSession
from .services.uploads import Completed, Failed, Progress

logger = logging.getLogger(__name__)


# ========================================================
# HELPERS
# ========================================================

def _read_payload(request):
    """
    Accepts a JSON body, or the 'json_data' form field the dashboard JS posts.
    """
    if request.content_type == 'application/json':
        raw = request.body.decode('utf-8') or '{}'
    else:
        raw = request.POST.get('json_data') or '{}'
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def _error_status(error):
    if isinstance(error, (SessionIntegrityError, DraftSubmittedError, SyncError)):
        return 409
    return 400


def _error_response(error, session=None):
    payload = {'status': 'error'}
    payload.update(error.as_dict())
    if session is not None and isinstance(error, SessionIntegrityError):
        # The draft was restarted; hand the fresh state back to the UI
        payload['draft'] = _draft_payload(session)
    return JsonResponse(payload, status=_error_status(error))


def _draft_payload(session):
    data = session.snapshot()
    selection = session.draft.visa_type
    data['fee'] = None
    if selection:
        visa_type = VisaType.objects.filter(pk=selection.visa_type_id or None).first()
        data['fee'] = str(visa_fee(selection.kind, visa_type))
    return data


def _receipt_payload(receipt):
    return {
        'application_id': receipt.application_id,
        'status': receipt.status,
        'reference': receipt.reference,
    }


def _serialize_event(event):
    if isinstance(event, Progress):
        return {'event': 'progress', 'percent': event.percent}
    if isinstance(event, Completed):
        return {'event': 'completed', 'url': event.remote_url,
                'document_id': event.server_document_id}
    if isinstance(event, Failed):
        data = {'event': 'failed'}
        data.update(event.error.as_dict())
        return data
    raise TypeError(f"Unknown upload event: {event!r}")


# ========================================================
# 1. CATALOG (Visa types the applicant can pick)
# ========================================================

@login_required
@require_GET
def get_visa_types_api(request):
    """
    API: Active visa types with their fee and required documents.
    """
    data = []
    for visa_type in VisaType.objects.filter(is_active=True):
        data.append({
            'id': visa_type.id,
            'name': visa_type.name,
            'kind': visa_type.kind,
            'description': visa_type.description,
            'price': str(visa_fee(visa_type.kind, visa_type)),
            'processing_time': visa_type.processing_time,
            'duration': visa_type.duration,
            'documents': [
                {
                    'type': kind.value,
                    'label': str(kind.label),
                    'description': str(DOCUMENT_DESCRIPTIONS[kind]),
                }
                for kind in required_documents(visa_type.kind)
            ],
        })

    return JsonResponse({'status': 'success', 'visa_types': data})


# ========================================================
# 2. DRAFT (Read / Pick visa type / Discard)
# ========================================================

@login_required
@require_GET
def get_draft_api(request):
    """
    API: Current draft of the logged-in applicant.
    A draft pointing at an application the server no longer knows is restarted.
    """
    session = ApplicationSession.for_request(request)
    try:
        session.verify_application()
    except SessionIntegrityError as e:
        return _error_response(e, session)
    except SyncError as e:
        logger.warning(f"Could not verify application {session.draft.application_id}: {e.message}")

    return JsonResponse({'status': 'success', 'draft': _draft_payload(session)})


@login_required
@require_POST
def select_visa_type_api(request):
    try:
        data = _read_payload(request)
    except ValueError:
        return JsonResponse({'status': 'error', 'message': 'Invalid JSON payload'}, status=400)

    visa_type = get_object_or_404(
        VisaType, pk=data.get('visa_type_id'), is_active=True)

    session = ApplicationSession.for_request(request)
    try:
        session.select_visa_type(visa_type)
    except VisaWorkflowError as e:
        return _error_response(e, session)

    return JsonResponse({'status': 'success', 'draft': _draft_payload(session)})


@login_required
@require_POST
def discard_draft_api(request):
    session = ApplicationSession.for_request(request)
    session.discard()
    return JsonResponse({'status': 'success', 'draft': _draft_payload(session)})


# ========================================================
# 3. STEPS (Submit one step / Go back)
# ========================================================

@login_required
@require_POST
def submit_step_api(request, step):
    """
    API: Validates and stores one step of the form.
    Step 5 (declaration) also submits the application.
    """
    if not 1 <= step <= STEP_COUNT:
        return JsonResponse({'status': 'error', 'message': f'Unknown step {step}'}, status=404)

    try:
        data = _read_payload(request)
    except ValueError:
        return JsonResponse({'status': 'error', 'message': 'Invalid JSON payload'}, status=400)

    session = ApplicationSession.for_request(request)
    try:
        result = session.submit_step(step, data)
    except VisaWorkflowError as e:
        return _error_response(e, session)

    if not result.accepted:
        return JsonResponse({
            'status': 'error',
            'message': 'Validation Failed',
            'errors': result.errors,
            'current_step': result.current_step,
        }, status=400)

    response = {
        'status': 'success',
        'current_step': result.current_step,
        'warnings': result.warnings,
        'draft': _draft_payload(session),
    }
    if result.receipt:
        response['receipt'] = _receipt_payload(result.receipt)
    return JsonResponse(response)


@login_required
@require_POST
def go_back_api(request):
    session = ApplicationSession.for_request(request)
    try:
        session.go_back()
    except DraftSubmittedError as e:
        return _error_response(e)
    return JsonResponse({'status': 'success', 'draft': _draft_payload(session)})


# ========================================================
# 4. DOCUMENTS (Streaming upload)
# ========================================================

@login_required
@require_POST
def upload_document_api(request, kind):
    """
    API: Uploads one supporting document.
    The response is a stream of JSON lines: progress events, then
    one 'completed' or 'failed' event.
    """
    if kind not in DocumentKind.values:
        return JsonResponse({'status': 'error', 'message': f'Unknown document type: {kind}'}, status=404)

    uploaded_file = request.FILES.get('file')
    if uploaded_file is None:
        return JsonResponse({'status': 'error', 'message': 'No file received'}, status=400)

    session = ApplicationSession.for_request(request)
    try:
        events = session.upload_document(kind, uploaded_file)
    except VisaWorkflowError as e:
        return _error_response(e, session)

    def stream():
        try:
            for event in events:
                yield json.dumps(_serialize_event(event)) + '\n'
        finally:
            # The session middleware has already run; persist the draft ourselves
            request.session.save()

    return StreamingHttpResponse(stream(), content_type='application/x-ndjson')


# ========================================================
# 5. SUBMIT
# ========================================================

@login_required
@require_POST
def submit_application_api(request):
    session = ApplicationSession.for_request(request)
    try:
        receipt = session.submit()
    except SubmissionPreconditionError as e:
        return _error_response(e)
    except VisaWorkflowError as e:
        return _error_response(e, session)

    return JsonResponse({'status': 'success', 'receipt': _receipt_payload(receipt)})


# ========================================================
# 6. CLIENT APPLICATIONS LIST
# ========================================================

@login_required
@require_GET
def get_client_applications_api(request):
    """
    AJAX API: Returns filtered list of Visa Applications of the current user.
    """
    # 1. Base Query
    qs = VisaApplication.objects.filter(applicant=request.user).select_related(
        'visa_type').order_by('-created_at')

    # 2. Search (Applicant Name, Ref, Passport)
    search = request.GET.get('search', '').strip()
    if search:
        qs = qs.filter(
            Q(reference__icontains=search) |
            Q(first_name__icontains=search) |
            Q(last_name__icontains=search) |
            Q(passport_number__icontains=search)
        )

    # 3. Filters
    status = request.GET.get('status')
    if status and status != 'all':
        qs = qs.filter(status=status)

    # 4. Pagination
    paginator = Paginator(qs, 10)
    page_obj = paginator.get_page(request.GET.get('page', 1))

    # 5. Serialize Data
    data = []
    for app in page_obj:
        data.append({
            'id': app.id,
            'reference': app.reference,
            'applicant': f"{app.first_name} {app.last_name}".strip(),
            'passport': app.passport_number,
            'visa_type': app.visa_type.name,
            'submitted_on': app.submission_date.strftime('%b %d, %Y') if app.submission_date else None,
            'status': app.status,
            'status_label': app.get_status_display(),
        })

    return JsonResponse({
        'status': 'success',
        'data': data,
        'pagination': {
            'current_page': page_obj.number,
            'total_pages': paginator.num_pages,
            'has_next': page_obj.has_next(),
            'has_previous': page_obj.has_previous(),
        }
    })


# ========================================================
# 7. BACK OFFICE (List with Stats / Details)
# ========================================================

@login_required
@permission_required('visas.view_visaapplication', raise_exception=True)
@require_GET
def get_admin_visa_list_api(request):
    """
    AJAX API for Admin Visa Dashboard.
    Handles: Stats counting, Search, Filtering, Pagination.
    """
    # 1. Base Query
    qs = VisaApplication.objects.select_related(
        'visa_type', 'applicant').order_by('-created_at')

    # 2. Search (Ref, Name, Passport, Visa type)
    search = request.GET.get('search', '').strip()
    if search:
        qs = qs.filter(
            Q(reference__icontains=search) |
            Q(first_name__icontains=search) |
            Q(last_name__icontains=search) |
            Q(passport_number__icontains=search) |
            Q(visa_type__name__icontains=search)
        )

    # 3. Calculate Stats (Live counts based on current search)
    stats = {
        code: qs.filter(status=code).count()
        for code, _label in VisaApplication.STATUS_CHOICES
    }

    # 4. Status Filter
    status_filter = request.GET.get('status', '').strip()
    if status_filter and status_filter != 'all':
        qs = qs.filter(status=status_filter)

    # 5. Visa Kind Filter
    kind_filter = request.GET.get('kind', '').strip()
    if kind_filter:
        qs = qs.filter(visa_type__kind=kind_filter)

    # 6. Pagination
    paginator = Paginator(qs, 10)
    page_obj = paginator.get_page(request.GET.get('page', 1))

    # 7. Serialize Data
    data = []
    for app in page_obj:
        applied_by_name = "Anonymous"
        if app.applicant:
            full_name = app.applicant.get_full_name()
            applied_by_name = full_name if full_name else app.applicant.get_username()

        data.append({
            'id': app.id,
            'reference': app.reference,
            'applicant': f"{app.first_name} {app.last_name}".strip(),
            'passport': app.passport_number,
            'apply_by': applied_by_name,
            'visa_type': app.visa_type.name,
            'kind': app.visa_type.kind,
            'status': app.status,
            'status_label': app.get_status_display(),
            'created_at': app.created_at.strftime('%Y-%m-%d'),
        })

    return JsonResponse({
        'status': 'success',
        'stats': stats,
        'data': data,
        'pagination': {
            'current_page': page_obj.number,
            'total_pages': paginator.num_pages,
            'has_next': page_obj.has_next(),
            'has_previous': page_obj.has_previous(),
        }
    })


@login_required
@permission_required('visas.view_visaapplication', raise_exception=True)
@require_GET
def get_visa_details(request, app_id):
    """
    API: Full details (sections & documents) of a single application.
    """
    app = get_object_or_404(
        VisaApplication.objects.select_related('visa_type', 'applicant'),
        id=app_id
    )

    # Documents in the order the applicant was asked for them
    order = {kind.value: i for i, kind in enumerate(required_documents(app.visa_type.kind))}
    documents = sorted(app.uploaded_documents.all(),
                       key=lambda doc: order.get(doc.document_type, len(order)))

    data = {
        'id': app.id,
        'reference': app.reference,
        'applicant': f"{app.first_name} {app.last_name}".strip(),
        'passport': app.passport_number,
        'visa_type': app.visa_type.name,
        'kind': app.visa_type.kind,
        'fee': str(visa_fee(app.visa_type.kind, app.visa_type)),
        'status': app.status,
        'status_label': app.get_status_display(),
        'submission_date': app.submission_date.isoformat() if app.submission_date else None,
        'admin_notes': app.admin_notes,
        'personal_info': app.personal_info,
        'travel_info': app.travel_info,
        'financial_info': app.financial_info,
        'documents': [serialize_document(doc) for doc in documents],
        'missing_documents': [
            kind.value for kind in required_documents(app.visa_type.kind)
            if not any(doc.document_type == kind.value for doc in documents)
        ],
    }
    return JsonResponse(data)
