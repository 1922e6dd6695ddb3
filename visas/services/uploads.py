"""
Document upload pipeline: validate -> transfer to the object store ->
register metadata with the application database.

UploadPipeline.upload() is a generator of UploadEvents. The storage write
runs on a worker thread; the generator only blocks on the event queue.
"""

import logging
import os
import queue
import threading
from dataclasses import dataclass

from django.conf import settings
from django.core.files import File
from django.core.files.storage import default_storage
from django.utils.text import get_valid_filename

from ..exceptions import (InvalidFile, RegistrationFailed, RemoteAPIError,
                          TransferFailed)
from ..forms import DocumentFileForm

logger = logging.getLogger(__name__)


# ========================================================
# 1. EVENTS
# ========================================================

@dataclass(frozen=True)
class Progress:
    percent: int


@dataclass(frozen=True)
class Completed:
    remote_url: str
    server_document_id: str


@dataclass(frozen=True)
class Failed:
    error: Exception


# ========================================================
# 2. PROGRESS-REPORTING FILE
# ========================================================

class _ProgressFile(File):
    """
    Reports how many bytes the storage backend has pulled through chunks().
    """

    def __init__(self, file, name, on_read, chunk_size):
        super().__init__(file, name)
        self._on_read = on_read
        self._chunk_size = chunk_size

    def chunks(self, chunk_size=None):
        consumed = 0
        for chunk in super().chunks(self._chunk_size):
            consumed += len(chunk)
            self._on_read(consumed)
            yield chunk


# ========================================================
# 3. PIPELINE
# ========================================================

class UploadPipeline:
    """
    api:           anything with register_document(application_id, metadata)
    storage:       a Django Storage (default_storage when omitted)
    max_size:      limit in MB
    allowed_types: {mime type: (extensions,)}
    """

    def __init__(self, api, storage=None, max_size=None, allowed_types=None,
                 chunk_size=None):
        self.api = api
        self.storage = storage or default_storage
        self.max_size = max_size
        self.allowed_types = allowed_types
        self.chunk_size = chunk_size or getattr(
            settings, 'VISA_UPLOAD_CHUNK_SIZE', 64 * 1024)
        self.prefix = getattr(
            settings, 'VISA_DOCUMENT_UPLOAD_PREFIX', 'visa-documents')

    def object_key(self, application_id, kind, file_name):
        safe_name = get_valid_filename(os.path.basename(file_name))
        return f"{self.prefix}/{application_id}-{kind}-{safe_name}"

    def validate(self, kind, file):
        form = DocumentFileForm(
            data={}, files={'file': file},
            max_size_mb=self.max_size, allowed_types=self.allowed_types)
        if not form.is_valid():
            message = str(form.errors['file'][0])
            raise InvalidFile(kind, message)
        return form.cleaned_data['file']

    def upload(self, application_id, kind, file):
        """
        Yields Progress(percent)... then Completed or Failed.
        Progress never goes backwards and stays below 100 until the
        object store has confirmed the write.
        """
        kind = str(kind)

        # 1. Validation (no storage or API call on failure)
        try:
            file = self.validate(kind, file)
        except InvalidFile as e:
            logger.info(f"Rejected {kind} upload for application {application_id}: {e.message}")
            yield Failed(e)
            return

        file_name = os.path.basename(file.name)
        file_size = file.size
        key = self.object_key(application_id, kind, file_name)

        # 2. Transfer
        saved_name = None
        last = 0
        for item in self._transfer(key, file, file_name, file_size):
            if isinstance(item, Exception):
                logger.error(f"Transfer of {kind} for application {application_id} failed: {item}")
                yield Failed(TransferFailed(kind, "The file could not be uploaded. Please try again."))
                return
            if isinstance(item, str):
                saved_name = item
                break
            percent = min(99, item)
            if percent > last:
                last = percent
                yield Progress(percent)

        yield Progress(100)
        remote_url = self.storage.url(saved_name)

        # 3. Registration: the authoritative "document attached" event
        try:
            result = self.api.register_document(application_id, {
                'documentType': kind,
                'fileName': file_name,
                'filePath': remote_url,
                'fileSize': file_size,
            })
        except RemoteAPIError as e:
            logger.error(f"Registering {kind} on application {application_id} failed: {e.message}")
            self._discard_object(saved_name)
            yield Failed(RegistrationFailed(kind, "The file was uploaded but could not be attached to your application."))
            return

        yield Completed(remote_url=remote_url,
                        server_document_id=str(result.get('id') or ''))

    # --- helpers ---

    def _transfer(self, key, file, file_name, file_size):
        """
        Runs storage.save on a worker thread. Yields ints (percent read),
        then the saved name, or the exception that stopped the write.
        """
        events = queue.Queue()

        def on_read(consumed):
            if file_size:
                events.put(int(consumed * 100 / file_size))

        def worker():
            try:
                if self.storage.exists(key):
                    self.storage.delete(key)
                wrapped = _ProgressFile(file, file_name, on_read, self.chunk_size)
                events.put(self.storage.save(key, wrapped))
            except Exception as e:  # any backend failure ends this upload
                events.put(e)

        threading.Thread(target=worker, daemon=True).start()

        while True:
            item = events.get()
            yield item
            if not isinstance(item, int):
                return

    def _discard_object(self, name):
        try:
            self.storage.delete(name)
        except Exception as e:
            logger.warning(f"Could not remove orphaned object {name}: {e}")
