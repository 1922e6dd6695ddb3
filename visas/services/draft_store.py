"""
Session-scoped persistence of the in-progress application.

The draft never leaves the applicant's session until the final submit:
the store only reads and writes three session keys and never talks to
the application database or the object store.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field

from django.utils import timezone

from ..choices import DocumentKind

logger = logging.getLogger(__name__)

DRAFT_KEY = 'visa_application_draft'
APPLICATION_ID_KEY = 'current_application_id'
MANIFEST_KEY = 'uploaded_documents'
STORE_KEYS = (DRAFT_KEY, APPLICATION_ID_KEY, MANIFEST_KEY)

DRAFT_VERSION = 2

STEP_COUNT = 5

# Document Upload Entry statuses
EMPTY = 'empty'
UPLOADING = 'uploading'
UPLOADED = 'uploaded'
FAILED = 'failed'

# Application record states
APP_UNSET = 'unset'
APP_PENDING = 'pending-create'
APP_CREATED = 'created'


def _now():
    return timezone.now().isoformat()


# ========================================================
# 1. SESSION STORAGE CONTRACT
# ========================================================

class SessionStorage:
    """
    String key/value view over a Django session (or any dict-like object).
    """

    def __init__(self, session):
        self.session = session

    def get(self, key):
        value = self.session.get(key)
        return value if isinstance(value, str) else None

    def set(self, key, value):
        self.session[key] = value

    def remove(self, key):
        self.session.pop(key, None)

    def refresh(self, keys):
        """
        Re-read keys from the session backend, picking up writes made by
        other requests of the same session since this one loaded it.
        Plain mappings have no backend and are left alone.
        """
        session_key = getattr(self.session, 'session_key', None)
        if not session_key:
            return
        latest = type(self.session)(session_key=session_key)
        for key in keys:
            value = latest.get(key)
            if value is None:
                self.session.pop(key, None)
            else:
                self.session[key] = value


# ========================================================
# 2. DRAFT SHAPE
# ========================================================

@dataclass
class VisaTypeSelection:
    kind: str
    visa_type_id: str

    @classmethod
    def from_dict(cls, d):
        if not isinstance(d, dict) or not d.get('kind'):
            return None
        return cls(kind=str(d['kind']), visa_type_id=str(d.get('visa_type_id') or ''))


@dataclass
class DocumentUploadEntry:
    kind: str
    status: str = EMPTY
    progress_percent: int = 0
    remote_url: str = ''
    file_name: str = ''
    file_size: int = 0
    uploaded_at: str = ''
    server_document_id: str = ''
    upload_token: str = ''

    @property
    def is_uploaded(self):
        return self.status == UPLOADED and bool(self.remote_url)

    def start(self, token):
        self.status = UPLOADING
        self.progress_percent = 0
        self.remote_url = ''
        self.server_document_id = ''
        self.upload_token = token

    def mark_uploaded(self, remote_url, server_document_id, file_name, file_size):
        if not remote_url:
            raise ValueError("An uploaded document needs a remote URL.")
        self.status = UPLOADED
        self.progress_percent = 100
        self.remote_url = remote_url
        self.server_document_id = str(server_document_id or '')
        self.file_name = file_name
        self.file_size = file_size
        self.uploaded_at = _now()

    def reset(self):
        self.status = EMPTY
        self.progress_percent = 0
        self.remote_url = ''
        self.file_name = ''
        self.file_size = 0
        self.uploaded_at = ''
        self.server_document_id = ''

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, d):
        entry = cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})
        # A reload interrupts whatever was in flight; a record without a URL
        # was never a successful upload.
        if entry.status != UPLOADED or not entry.remote_url:
            entry.reset()
            entry.upload_token = ''
        return entry


def _empty_declaration():
    return {'agree_to_terms': False, 'data_consent': False}


@dataclass
class Draft:
    session_key: str = field(default_factory=lambda: uuid.uuid4().hex)
    current_step: int = 1
    visa_type: VisaTypeSelection = None
    personal_info: dict = field(default_factory=dict)
    travel_info: dict = field(default_factory=dict)
    financial_info: dict = field(default_factory=dict)
    documents: dict = field(default_factory=dict)
    declaration: dict = field(default_factory=_empty_declaration)
    completed_steps: list = field(default_factory=list)
    unsynced_sections: list = field(default_factory=list)
    application_id: str = None
    application_state: str = APP_UNSET
    submitted: bool = False
    version: int = DRAFT_VERSION
    created_at: str = field(default_factory=_now)
    updated_at: str = ''

    @property
    def visa_kind(self):
        return self.visa_type.kind if self.visa_type else None

    @property
    def application_created(self):
        return self.application_state == APP_CREATED and bool(self.application_id)

    def entry(self, kind):
        kind = str(kind)
        if kind not in self.documents:
            self.documents[kind] = DocumentUploadEntry(kind=kind)
        return self.documents[kind]

    def uploaded_entries(self):
        return [e for e in self.documents.values() if e.is_uploaded]

    def document_flags(self):
        """
        The documents-step checkboxes. Derived from upload status only.
        """
        return {kind.value: self.documents[kind.value].is_uploaded
                if kind.value in self.documents else False
                for kind in DocumentKind}

    def to_dict(self):
        data = asdict(self)
        data['documents'] = {k: e.to_dict() for k, e in self.documents.items()}
        return data

    @classmethod
    def from_dict(cls, d):
        filtered = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        documents = filtered.pop('documents', None) or {}
        visa_type = filtered.pop('visa_type', None)

        # Shapes that cannot be repaired make the whole draft unreadable
        if not isinstance(documents, dict):
            raise ValueError(f"documents must be an object, got {type(documents).__name__}")
        for section in ('personal_info', 'travel_info', 'financial_info'):
            value = filtered.get(section)
            if value is None:
                filtered.pop(section, None)
            elif not isinstance(value, dict):
                raise ValueError(f"{section} must be an object, got {type(value).__name__}")
        for name in ('completed_steps', 'unsynced_sections'):
            if not isinstance(filtered.get(name) or [], list):
                raise ValueError(f"{name} must be a list")

        draft = cls(**filtered)
        draft.visa_type = VisaTypeSelection.from_dict(visa_type)
        draft.documents = {}
        for kind, raw in documents.items():
            if kind in DocumentKind.values and isinstance(raw, dict):
                raw = dict(raw, kind=kind)
                draft.documents[kind] = DocumentUploadEntry.from_dict(raw)

        if not isinstance(draft.declaration, dict):
            draft.declaration = _empty_declaration()
        draft.declaration = {**_empty_declaration(), **draft.declaration}
        draft.current_step = min(max(int(draft.current_step or 1), 1), STEP_COUNT)
        draft.completed_steps = sorted({int(s) for s in draft.completed_steps or []})
        draft.unsynced_sections = [str(s) for s in draft.unsynced_sections or []]
        if draft.application_id is not None:
            draft.application_id = str(draft.application_id)
        if draft.application_state not in (APP_UNSET, APP_PENDING, APP_CREATED):
            draft.application_state = APP_UNSET
        draft.version = DRAFT_VERSION
        return draft


# ========================================================
# 3. THE STORE
# ========================================================

class DraftStore:
    """
    load() / save(draft) / clear() over a SessionStorage.
    Single writer, single reader per session.
    """

    def __init__(self, storage):
        self.storage = storage

    def load(self):
        raw = self.storage.get(DRAFT_KEY)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            draft = Draft.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding unreadable visa draft: {e}")
            return None

        self._merge_manifest(draft)

        marker = self.load_application_id()
        if marker and not draft.application_created:
            draft.application_id = marker
            draft.application_state = APP_CREATED
        return draft

    def save(self, draft):
        draft.updated_at = _now()
        self.storage.set(DRAFT_KEY, json.dumps(draft.to_dict()))
        self.storage.set(MANIFEST_KEY, json.dumps([
            {
                'type': e.kind,
                'name': e.file_name,
                'size': e.file_size,
                'filePath': e.remote_url,
                'documentId': e.server_document_id,
                'uploadedAt': e.uploaded_at,
            }
            for e in draft.uploaded_entries()
        ]))

    def save_entry(self, draft, entry):
        """
        Write one document entry on top of the latest stored draft instead
        of the whole in-memory copy, so uploads of other kinds finished by
        other requests in the meantime are kept. Returns False when the
        stored draft is gone or belongs to another session key.
        """
        self.storage.refresh(STORE_KEYS)
        latest = self.load()
        if latest is None or latest.session_key != draft.session_key:
            logger.warning(f"Not recording {entry.kind} upload: draft {draft.session_key} was replaced")
            return False

        latest.documents[entry.kind] = entry
        self.save(latest)

        for kind, stored in latest.documents.items():
            current = draft.documents.get(kind)
            if kind == entry.kind or not stored.is_uploaded:
                continue
            if current is not None and current.status == UPLOADING:
                continue
            draft.documents[kind] = stored
        return True

    def clear(self):
        for key in STORE_KEYS:
            self.storage.remove(key)

    # --- application id marker ---

    def load_application_id(self):
        return self.storage.get(APPLICATION_ID_KEY) or None

    def save_application_id(self, application_id):
        self.storage.set(APPLICATION_ID_KEY, str(application_id))

    # --- helpers ---

    def _merge_manifest(self, draft):
        """
        Older drafts kept uploads only in the manifest; bring them back.
        """
        raw = self.storage.get(MANIFEST_KEY)
        if not raw:
            return
        try:
            manifest = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable uploaded-documents manifest")
            return
        if not isinstance(manifest, list):
            return

        for item in manifest:
            if not isinstance(item, dict):
                continue
            kind = item.get('type')
            if kind not in DocumentKind.values or not item.get('filePath'):
                continue
            if draft.entry(kind).is_uploaded:
                continue
            entry = draft.entry(kind)
            entry.status = UPLOADED
            entry.progress_percent = 100
            entry.remote_url = item['filePath']
            entry.file_name = item.get('name') or ''
            entry.file_size = item.get('size') or 0
            entry.server_document_id = str(item.get('documentId') or '')
            entry.uploaded_at = item.get('uploadedAt') or ''
