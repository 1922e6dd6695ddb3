import logging
from collections import namedtuple

from ..choices import required_documents
from ..exceptions import (ApplicationNotCreated, ApplicationNotFoundError,
                          DeclarationIncomplete, DraftSubmittedError,
                          MissingDocuments, RemoteAPIError,
                          SessionIntegrityError, SyncError)

logger = logging.getLogger(__name__)

SubmissionReceipt = namedtuple(
    'SubmissionReceipt', ['application_id', 'status', 'reference'])


class SubmissionFinalizer:
    """
    Turns a complete draft into a submitted application.

    1. Preconditions (first failure wins): application created, declaration
       accepted, every required document uploaded.
    2. Reconcile all three sections with the server.
    3. Submit once, then clear the local draft.
    """

    def __init__(self, api, store):
        self.api = api
        self.store = store

    def check(self, draft):
        if draft.submitted:
            raise DraftSubmittedError()

        if not draft.application_created:
            raise ApplicationNotCreated()

        declaration = draft.declaration or {}
        if not (declaration.get('agree_to_terms') and declaration.get('data_consent')):
            raise DeclarationIncomplete()

        # An application adopted from an older draft may carry no kind
        if not draft.visa_kind:
            raise SessionIntegrityError(
                "Your application has no visa type. Please start again.")

        missing = [
            kind for kind in required_documents(draft.visa_kind)
            if not (kind.value in draft.documents and draft.documents[kind.value].is_uploaded)
        ]
        if missing:
            raise MissingDocuments(missing)

    def submit(self, draft):
        self.check(draft)
        application_id = draft.application_id

        try:
            self._reconcile(draft)
            result = self.api.submit_application(application_id)
        except ApplicationNotFoundError:
            raise SessionIntegrityError(
                "Your application could not be found. Please start again.")
        except RemoteAPIError as e:
            logger.warning(f"Submission of application {application_id} failed: {e.message}")
            raise SyncError(e.message, section='submit')

        self.store.clear()
        draft.submitted = True
        draft.unsynced_sections = []

        logger.info(f"Application {application_id} submitted ({result.get('reference')})")
        return SubmissionReceipt(
            application_id=str(result.get('id') or application_id),
            status=result.get('status'),
            reference=result.get('reference'),
        )

    def _reconcile(self, draft):
        application_id = draft.application_id
        self.api.update_personal_info(application_id, draft.personal_info)
        self.api.update_travel_info(application_id, dict(
            draft.travel_info,
            visa_type_id=draft.visa_type.visa_type_id if draft.visa_type else None,
        ))
        self.api.update_financial_info(application_id, draft.financial_info)
