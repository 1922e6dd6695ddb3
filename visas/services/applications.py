import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..choices import DocumentKind
from ..exceptions import ApplicationNotFoundError, RemoteAPIError
from ..models import VisaApplication, VisaApplicationDocument, VisaType

logger = logging.getLogger(__name__)


def serialize_application(app):
    """
    The ApplicationRecord shape returned to the applicant's session.
    """
    return {
        'id': str(app.id),
        'reference': app.reference,
        'status': app.status,
        'submission_date': app.submission_date.isoformat() if app.submission_date else None,
        'visa_type': {
            'id': str(app.visa_type_id),
            'name': app.visa_type.name,
            'kind': app.visa_type.kind,
            'price': str(app.visa_type.price),
        },
        'personal_info': app.personal_info or None,
        'travel_info': app.travel_info or None,
        'financial_info': app.financial_info or None,
        'documents': [serialize_document(doc) for doc in app.uploaded_documents.all()],
    }


def serialize_document(doc):
    return {
        'id': str(doc.id),
        'documentType': doc.document_type,
        'fileName': doc.file_name,
        'filePath': doc.file_path,
        'fileSize': doc.file_size,
        'status': doc.status,
        'uploadedAt': doc.created_at.isoformat() if doc.created_at else None,
    }


class ApplicationAPI:
    """
    The application database as seen by an applicant's session:
    create once, update section by section, register documents, submit.
    """

    def __init__(self, applicant=None):
        # Anonymous users are stored as "no applicant"
        if applicant is not None and not getattr(applicant, 'is_authenticated', False):
            applicant = None
        self.applicant = applicant

    # =========================================================
    # 1. LOOKUPS
    # =========================================================

    def _get(self, application_id, lock=False):
        qs = VisaApplication.objects.select_related('visa_type')
        if lock:
            qs = qs.select_for_update()
        try:
            return qs.get(pk=int(application_id))
        except (VisaApplication.DoesNotExist, TypeError, ValueError):
            raise ApplicationNotFoundError(application_id)

    def get_application_by_id(self, application_id):
        return serialize_application(self._get(application_id))

    # =========================================================
    # 2. CREATE
    # =========================================================

    def create_application(self, visa_type_id, draft_key=''):
        """
        Creates the server-side record. Idempotent per draft_key: a second
        call for the same draft returns the existing record.
        """
        try:
            visa_type = VisaType.objects.get(pk=int(visa_type_id), is_active=True)
        except (VisaType.DoesNotExist, TypeError, ValueError):
            raise RemoteAPIError(f"Visa type {visa_type_id} is not available.")

        if draft_key:
            existing = VisaApplication.objects.filter(draft_key=draft_key).first()
            if existing:
                return self._created_payload(existing)

        try:
            with transaction.atomic():
                app = VisaApplication.objects.create(
                    visa_type=visa_type,
                    applicant=self.applicant,
                    draft_key=draft_key or None,
                    status='pending',
                )
        except IntegrityError:
            # Lost a race against a concurrent create for the same draft
            app = VisaApplication.objects.get(draft_key=draft_key)

        logger.info(f"Visa application {app.reference} created for draft {draft_key}")
        return self._created_payload(app)

    def _created_payload(self, app):
        return {'id': str(app.id), 'reference': app.reference, 'status': app.status}

    # =========================================================
    # 3. SECTION UPDATES
    # =========================================================

    def _update_section(self, application_id, section, data, visa_type_id=None):
        with transaction.atomic():
            app = self._get(application_id, lock=True)

            # State Guard: a submitted application is frozen
            if not app.is_editable:
                raise RemoteAPIError(
                    f"Application {app.reference} is '{app.status}' and can no longer be edited.")

            # Kind Guard: sections of another visa type never land on this record
            if visa_type_id and str(app.visa_type_id) != str(visa_type_id):
                raise RemoteAPIError(
                    f"Application {app.reference} was created for another visa type.")

            setattr(app, section, dict(data))
            update_fields = [section, 'updated_at']

            if section == 'personal_info':
                app.first_name = data.get('first_name', '')
                app.last_name = data.get('last_name', '')
                app.passport_number = data.get('passport_number', '')
                update_fields += ['first_name', 'last_name', 'passport_number']

            app.save(update_fields=update_fields)
        return self._created_payload(app)

    def update_personal_info(self, application_id, data):
        return self._update_section(application_id, 'personal_info', data)

    def update_travel_info(self, application_id, data):
        data = dict(data)
        visa_type_id = data.pop('visa_type_id', None)
        return self._update_section(application_id, 'travel_info', data,
                                    visa_type_id=visa_type_id)

    def update_financial_info(self, application_id, data):
        return self._update_section(application_id, 'financial_info', data)

    # =========================================================
    # 4. DOCUMENT REGISTRY
    # =========================================================

    def register_document(self, application_id, metadata):
        """
        metadata: {documentType, fileName, filePath, fileSize}
        Re-registering a type replaces the previous metadata.
        """
        document_type = metadata.get('documentType')
        if document_type not in DocumentKind.values:
            raise RemoteAPIError(f"Unknown document type: {document_type}")
        if not metadata.get('filePath'):
            raise RemoteAPIError("A document needs a file path.")

        with transaction.atomic():
            app = self._get(application_id, lock=True)
            if not app.is_editable:
                raise RemoteAPIError(
                    f"Application {app.reference} is '{app.status}' and no longer accepts documents.")

            doc, _ = VisaApplicationDocument.objects.update_or_create(
                application=app,
                document_type=document_type,
                defaults={
                    'file_name': metadata.get('fileName') or '',
                    'file_path': metadata['filePath'],
                    'file_size': int(metadata.get('fileSize') or 0),
                    'status': 'pending',
                    'rejection_reason': '',
                },
            )

        logger.info(f"Document {document_type} registered on {app.reference}")
        return {'id': str(doc.id), 'status': doc.status}

    # =========================================================
    # 5. SUBMIT
    # =========================================================

    def submit_application(self, application_id):
        with transaction.atomic():
            # 1. Lock to prevent double-processing
            app = self._get(application_id, lock=True)

            # 2. State Guard: submitting twice is a no-op, anything later is an error
            if app.status == 'submitted':
                return {'id': str(app.id), 'status': app.status, 'reference': app.reference}

            if app.status != 'pending':
                raise RemoteAPIError(
                    f"Cannot submit. Application is currently '{app.status}'.")

            if not (app.personal_info and app.travel_info and app.financial_info):
                raise RemoteAPIError(
                    f"Application {app.reference} is missing applicant information.")

            # 3. Finalize
            app.status = 'submitted'
            app.submission_date = timezone.now()
            app.save(update_fields=['status', 'submission_date', 'updated_at'])

        logger.info(f"Visa application {app.reference} submitted")
        return {'id': str(app.id), 'status': app.status, 'reference': app.reference}
