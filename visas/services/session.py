"""
The applicant's side of the workflow: one ApplicationSession per request,
wrapping the draft kept in the Django session.

    step 1 personal_info -> step 2 travel_info -> step 3 financial_info
      -> step 4 documents (application created lazily here)
      -> step 5 declaration (hands over to the SubmissionFinalizer)
"""

import logging
import os
import uuid
from collections import namedtuple

from ..choices import (DOCUMENT_DESCRIPTIONS, DocumentKind, purpose_for,
                       required_documents)
from ..exceptions import (ApplicationNotFoundError, DraftSubmittedError,
                          RemoteAPIError, SessionIntegrityError, SyncError)
from ..forms import STEP_NAMES, validate
from .applications import ApplicationAPI
from .draft_store import (APP_CREATED, APP_PENDING, APP_UNSET, STEP_COUNT,
                          Draft, DocumentUploadEntry, DraftStore,
                          SessionStorage, VisaTypeSelection)
from .submission import SubmissionFinalizer
from .uploads import Completed, Failed, Progress, UploadPipeline

logger = logging.getLogger(__name__)

StepResult = namedtuple(
    'StepResult', ['accepted', 'errors', 'warnings', 'current_step', 'receipt'])

SECTIONS = ('personal_info', 'travel_info', 'financial_info')
DOCUMENTS_STEP = 4


class ApplicationSession:

    def __init__(self, storage, api, pipeline=None, finalizer=None):
        self.store = DraftStore(storage)
        self.api = api
        self.pipeline = pipeline or UploadPipeline(api)
        self.finalizer = finalizer or SubmissionFinalizer(api, self.store)
        self._creating = False
        self.draft = self.store.load() or Draft()

    @classmethod
    def for_request(cls, request):
        return cls(SessionStorage(request.session), ApplicationAPI(request.user))

    # =========================================================
    # 1. VISA TYPE
    # =========================================================

    def select_visa_type(self, visa_type):
        """
        visa_type: a VisaType (anything with .id and .kind).
        The kind is fixed once the server-side record exists.
        """
        self._guard()
        draft = self.draft
        kind = str(visa_type.kind)

        if draft.application_created and kind != draft.visa_kind:
            self._integrity_failure(
                "The visa type cannot be changed after the application was created.")

        if draft.visa_kind and kind != draft.visa_kind:
            # Travel details were accepted for the previous kind
            draft.completed_steps = [s for s in draft.completed_steps if s < 2]
            draft.current_step = min(draft.current_step, 2)

        draft.visa_type = VisaTypeSelection(kind=kind, visa_type_id=str(visa_type.id))
        draft.travel_info['visa_type'] = kind
        if not draft.travel_info.get('purpose_of_travel'):
            draft.travel_info['purpose_of_travel'] = purpose_for(kind)

        self.store.save(draft)
        return draft.visa_type

    # =========================================================
    # 2. STEPS
    # =========================================================

    def submit_step(self, step, values):
        """
        Validate and accept one step. Validation problems come back in
        StepResult.errors; only workflow failures raise.
        """
        self._guard()
        draft = self.draft
        step = int(step)
        if not 1 <= step <= STEP_COUNT:
            raise ValueError(f"Unknown step: {step}")

        pending = [s for s in range(1, step) if s not in draft.completed_steps]
        if pending:
            return StepResult(False, {'__all__': f"Complete step {pending[0]} first."},
                              [], draft.current_step, None)

        name = STEP_NAMES[step - 1]
        values = dict(values or {})

        if name == 'documents':
            # Checkbox state is whatever has actually been uploaded
            values = draft.document_flags()

        if (name == 'travel_info' and draft.application_created
                and values.get('visa_type') and values['visa_type'] != draft.visa_kind):
            self._integrity_failure(
                "The visa type cannot be changed after the application was created.")

        result = validate(name, values, visa_kind=draft.visa_kind)
        if not result.ok:
            return StepResult(False, result.errors, [], draft.current_step, None)

        if name in SECTIONS:
            setattr(draft, name, result.values)
            if name not in draft.unsynced_sections:
                draft.unsynced_sections.append(name)
            if name == 'travel_info' and draft.visa_type is None:
                draft.visa_type = VisaTypeSelection(
                    kind=result.values['visa_type'], visa_type_id='')
        elif name == 'declaration':
            draft.declaration = {
                'agree_to_terms': result.values['agree_to_terms'],
                'data_consent': result.values['data_consent'],
            }

        if step not in draft.completed_steps:
            draft.completed_steps = sorted(draft.completed_steps + [step])
        draft.current_step = min(step + 1, STEP_COUNT)

        warnings = []
        if draft.current_step >= DOCUMENTS_STEP and not draft.application_created:
            try:
                self._create()
            except SyncError as e:
                warnings.append(e.message)
        if draft.application_created:
            warnings += self.sync_pending()

        self.store.save(draft)

        receipt = None
        if name == 'declaration':
            receipt = self.submit()

        return StepResult(True, {}, warnings, draft.current_step, receipt)

    def go_back(self):
        self._guard()
        self.draft.current_step = max(1, self.draft.current_step - 1)
        self.store.save(self.draft)
        return self.draft.current_step

    # =========================================================
    # 3. SERVER RECORD
    # =========================================================

    def ensure_application(self):
        """
        Create the server-side record once, then push everything accepted
        so far. Returns the application id (None while a create is running).
        """
        self._guard()
        if not self.draft.application_created:
            self._create()
        if self.draft.application_created:
            self.sync_pending()
            self.store.save(self.draft)
        return self.draft.application_id

    def _create(self):
        draft = self.draft
        if draft.application_created or self._creating:
            return draft.application_id

        marker = self.store.load_application_id()
        if marker:
            draft.application_id = marker
            draft.application_state = APP_CREATED
            self.store.save(draft)
            return marker

        if not draft.visa_type or not draft.visa_type.visa_type_id:
            raise SyncError("Select a visa type before continuing.", section='create')

        self._creating = True
        draft.application_state = APP_PENDING
        self.store.save(draft)
        try:
            result = self.api.create_application(
                draft.visa_type.visa_type_id, draft_key=draft.session_key)
        except RemoteAPIError as e:
            draft.application_state = APP_UNSET
            self.store.save(draft)
            logger.warning(f"Creating application for draft {draft.session_key} failed: {e.message}")
            raise SyncError("Your application could not be created yet. We will retry.",
                            section='create')
        finally:
            self._creating = False

        draft.application_id = str(result['id'])
        draft.application_state = APP_CREATED
        self.store.save_application_id(draft.application_id)
        self.store.save(draft)
        logger.info(f"Draft {draft.session_key} is now application {draft.application_id}")
        return draft.application_id

    def sync_pending(self):
        """
        Push every accepted-but-unsynced section. Returns warning messages
        for the sections that are still behind.
        """
        self._guard()
        draft = self.draft
        if not draft.application_created:
            return []

        warnings = []
        for section in list(draft.unsynced_sections):
            try:
                self._push(section)
            except ApplicationNotFoundError:
                self._integrity_failure(
                    "Your application could not be found. Please start again.")
            except RemoteAPIError as e:
                logger.warning(f"Sync of {section} for application {draft.application_id} failed: {e.message}")
                warnings.append(f"Your {section.replace('_', ' ')} will be saved later.")
            else:
                draft.unsynced_sections.remove(section)
        return warnings

    def _push(self, section):
        draft = self.draft
        data = getattr(draft, section)
        if section == 'travel_info':
            data = dict(data, visa_type_id=draft.visa_type.visa_type_id if draft.visa_type else None)
        getattr(self.api, f'update_{section}')(draft.application_id, data)

    def verify_application(self):
        """
        Check the cached application against the server. A record that is
        gone, or that was created for another visa kind, ends the session.
        """
        draft = self.draft
        if not draft.application_created:
            return None
        try:
            record = self.api.get_application_by_id(draft.application_id)
        except ApplicationNotFoundError:
            self._integrity_failure(
                "Your application could not be found. Please start again.")
        except RemoteAPIError as e:
            raise SyncError(e.message, section='verify')

        if draft.visa_kind and record['visa_type']['kind'] != draft.visa_kind:
            self._integrity_failure(
                "Your application was created for a different visa type. Please start again.")
        return record

    # =========================================================
    # 4. DOCUMENTS
    # =========================================================

    def document_entries(self):
        """
        One row per required document of the selected visa kind, in order.
        """
        if not self.draft.visa_kind:
            return []
        return [
            self.draft.documents.get(kind.value) or DocumentUploadEntry(kind=kind.value)
            for kind in required_documents(self.draft.visa_kind)
        ]

    def upload_document(self, kind, file):
        """
        Starts an upload and returns its event iterator. A newer upload of
        the same kind takes the entry over; the older one stops reporting.
        """
        self._guard()
        kind = DocumentKind(kind).value
        application_id = self.ensure_application()
        if not application_id:
            raise SyncError("Your application is still being created.", section='create')

        token = uuid.uuid4().hex
        self.draft.entry(kind).start(token)
        events = self.pipeline.upload(application_id, kind, file)
        return self._track(kind, token, events, os.path.basename(file.name), file.size)

    def _track(self, kind, token, events, file_name, file_size):
        draft = self.draft
        for event in events:
            entry = self.draft.entry(kind)
            if self.draft is not draft or entry.upload_token != token:
                logger.warning(f"Dropping events of a superseded {kind} upload")
                events.close()
                return

            if isinstance(event, Progress):
                entry.progress_percent = event.percent
            elif isinstance(event, Completed):
                entry.mark_uploaded(event.remote_url, event.server_document_id,
                                    file_name, file_size)
                self.store.save_entry(draft, entry)
            elif isinstance(event, Failed):
                entry.reset()
                entry.upload_token = ''
                self.store.save_entry(draft, entry)
            yield event

    # =========================================================
    # 5. SUBMIT / RESTART
    # =========================================================

    def submit(self):
        try:
            return self.finalizer.submit(self.draft)
        except SessionIntegrityError:
            self.restart()
            raise

    def restart(self):
        self.store.clear()
        self.draft = Draft()
        self._creating = False
        return self.draft

    discard = restart

    def snapshot(self):
        draft = self.draft
        return {
            'session_key': draft.session_key,
            'current_step': draft.current_step,
            'completed_steps': list(draft.completed_steps),
            'visa_type': {
                'kind': draft.visa_type.kind,
                'id': draft.visa_type.visa_type_id,
            } if draft.visa_type else None,
            'personal_info': draft.personal_info,
            'travel_info': draft.travel_info,
            'financial_info': draft.financial_info,
            'declaration': draft.declaration,
            'documents': draft.document_flags(),
            'required_documents': [
                {
                    'type': entry.kind,
                    'label': str(DocumentKind(entry.kind).label),
                    'description': str(DOCUMENT_DESCRIPTIONS[DocumentKind(entry.kind)]),
                    'status': entry.status,
                    'progress': entry.progress_percent,
                    'url': entry.remote_url,
                    'file_name': entry.file_name,
                }
                for entry in self.document_entries()
            ],
            'application_id': draft.application_id,
            'application_state': draft.application_state,
            'unsynced_sections': list(draft.unsynced_sections),
            'submitted': draft.submitted,
        }

    # --- helpers ---

    def _guard(self):
        if self.draft.submitted:
            raise DraftSubmittedError()

    def _integrity_failure(self, message):
        logger.warning(f"Restarting visa draft {self.draft.session_key}: {message}")
        self.restart()
        raise SessionIntegrityError(message)
