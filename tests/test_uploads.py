from unittest import mock

import pytest
from django.core.files.storage import InMemoryStorage

from visas.exceptions import (InvalidFile, RegistrationFailed, RemoteAPIError,
                              TransferFailed)
from visas.services.uploads import Completed, Failed, Progress, UploadPipeline

from conftest import drain, make_file


class FlakyStorage(InMemoryStorage):
    """
    Drops the connection once fail_at percent of the file has been read.
    """

    def __init__(self, fail_at, **kwargs):
        super().__init__(**kwargs)
        self.fail_at = fail_at

    def _save(self, name, content):
        pulled = 0
        for chunk in content.chunks():
            pulled += len(chunk)
            if pulled * 100 >= content.size * self.fail_at:
                raise OSError("connection reset by peer")
        return super()._save(name, content)


@pytest.fixture
def registry():
    api = mock.Mock()
    api.register_document.return_value = {'id': 17, 'status': 'pending'}
    return api


def percents(events):
    return [e.percent for e in events if isinstance(e, Progress)]


def test_successful_upload(registry, storage):
    pipeline = UploadPipeline(registry, storage=storage, chunk_size=100)
    events = drain(pipeline.upload('5', 'passportCopy', make_file('passport.pdf', size=1000)))

    assert isinstance(events[-1], Completed)
    assert events[-1].server_document_id == '17'
    assert events[-1].remote_url == storage.url('visa-documents/5-passportCopy-passport.pdf')
    assert storage.exists('visa-documents/5-passportCopy-passport.pdf')

    registry.register_document.assert_called_once_with('5', {
        'documentType': 'passportCopy',
        'fileName': 'passport.pdf',
        'filePath': events[-1].remote_url,
        'fileSize': 1000,
    })


def test_progress_is_monotonic_and_completes_once(registry, storage):
    pipeline = UploadPipeline(registry, storage=storage, chunk_size=100)
    events = drain(pipeline.upload('5', 'photos', make_file('me.png', size=1000, content_type='image/png')))

    seen = percents(events)
    assert seen == sorted(seen)
    assert seen.count(100) == 1
    assert seen[-1] == 100
    assert max(seen[:-1]) <= 99
    # 100 only after every byte went through
    assert events.index(Progress(100)) == len(events) - 2


def test_previous_object_is_replaced(registry, storage):
    key = 'visa-documents/5-photos-me.png'
    storage.save(key, make_file('me.png', size=10, content_type='image/png'))

    pipeline = UploadPipeline(registry, storage=storage)
    events = drain(pipeline.upload('5', 'photos', make_file('me.png', size=30, content_type='image/png')))

    assert isinstance(events[-1], Completed)
    assert storage.size(key) == 30


@pytest.mark.parametrize('file', [
    make_file('notes.txt', content_type='text/plain'),
    make_file('empty.pdf', size=0),
    make_file('huge.pdf', size=6 * 1024 * 1024),
])
def test_invalid_files_never_reach_storage(registry, file):
    storage = mock.Mock()
    pipeline = UploadPipeline(registry, storage=storage)
    events = drain(pipeline.upload('5', 'passportCopy', file))

    assert len(events) == 1
    assert isinstance(events[0], Failed)
    assert isinstance(events[0].error, InvalidFile)
    assert events[0].error.kind == 'passportCopy'
    storage.save.assert_not_called()
    registry.register_document.assert_not_called()


def test_transfer_failure_after_87_percent(registry):
    pipeline = UploadPipeline(registry, storage=FlakyStorage(fail_at=87), chunk_size=10)
    events = drain(pipeline.upload('5', 'travelInsurance', make_file('policy.pdf', size=1000)))

    assert max(percents(events)) == 87
    assert isinstance(events[-1], Failed)
    assert isinstance(events[-1].error, TransferFailed)
    registry.register_document.assert_not_called()


def test_registration_failure_removes_the_object(registry, storage):
    registry.register_document.side_effect = RemoteAPIError("registry unavailable")
    pipeline = UploadPipeline(registry, storage=storage)
    events = drain(pipeline.upload('5', 'photos', make_file('me.jpg', content_type='image/jpeg')))

    assert isinstance(events[-1], Failed)
    assert isinstance(events[-1].error, RegistrationFailed)
    assert not storage.exists('visa-documents/5-photos-me.jpg')
