from decimal import Decimal
from unittest import mock

import pytest

from visas.choices import visa_fee
from visas.exceptions import (ApplicationNotCreated, DeclarationIncomplete,
                              MissingDocuments, RemoteAPIError,
                              SessionIntegrityError, SyncError)
from visas.models import VisaApplication
from visas.services.applications import ApplicationAPI
from visas.services.draft_store import (Draft, DraftStore, SessionStorage,
                                        VisaTypeSelection)
from visas.services.submission import SubmissionFinalizer

from conftest import FINANCIAL_INFO, PERSONAL_INFO, travel_info

pytestmark = pytest.mark.django_db

BOTH_BOXES = {'agree_to_terms': True, 'data_consent': True}


def test_not_created_is_checked_first():
    draft = Draft(visa_type=VisaTypeSelection('tourist', '1'))
    finalizer = SubmissionFinalizer(mock.Mock(), mock.Mock())

    with pytest.raises(ApplicationNotCreated):
        finalizer.submit(draft)


def test_adopted_application_without_visa_type_is_an_integrity_error():
    draft = Draft(application_id='9', application_state='created', declaration=dict(BOTH_BOXES))
    finalizer = SubmissionFinalizer(mock.Mock(), mock.Mock())

    with pytest.raises(SessionIntegrityError):
        finalizer.submit(draft)
    finalizer.api.submit_application.assert_not_called()


def test_declaration_is_checked_before_documents(make_session, fill_steps):
    session = fill_steps(make_session(), 'tourist')
    session.draft.declaration = {'agree_to_terms': True, 'data_consent': False}

    with pytest.raises(DeclarationIncomplete):
        session.submit()


def test_tourist_without_travel_insurance(make_session, fill_steps, upload_all, session_data):
    session = fill_steps(make_session(), 'tourist')
    upload_all(session, 'tourist', skip=('travelInsurance',))
    session.draft.declaration = dict(BOTH_BOXES)

    with pytest.raises(MissingDocuments) as exc:
        session.submit()
    assert exc.value.kinds == ['travelInsurance']
    assert exc.value.as_dict()['documents'] == ['travelInsurance']
    assert VisaApplication.objects.get().status == 'pending'

    upload_all(session, 'tourist', skip=('passportCopy', 'photos', 'yellowFeverCertificate'))
    receipt = session.submit()
    assert receipt.status == 'submitted'


def test_missing_documents_are_listed_in_order(make_session, fill_steps):
    session = fill_steps(make_session(), 'work')
    session.draft.declaration = dict(BOTH_BOXES)

    with pytest.raises(MissingDocuments) as exc:
        session.submit()
    assert exc.value.kinds == [
        'passportCopy', 'photos', 'yellowFeverCertificate', 'employmentContract',
        'workPermit', 'criminalRecord', 'medicalCertificate']


def test_reconciliation_failure_keeps_the_draft(make_session, fill_steps, upload_all, session_data):
    api = mock.Mock(wraps=ApplicationAPI())
    session = fill_steps(make_session(api=api), 'tourist')
    upload_all(session, 'tourist')
    session.draft.declaration = dict(BOTH_BOXES)
    api.update_travel_info.side_effect = RemoteAPIError("timeout")

    with pytest.raises(SyncError):
        session.submit()
    assert not session.draft.submitted
    assert DraftStore(SessionStorage(session_data)).load() is not None
    api.submit_application.assert_not_called()


def test_vanished_record_restarts_the_session(make_session, fill_steps, upload_all, session_data):
    session = fill_steps(make_session(), 'tourist')
    upload_all(session, 'tourist')
    session.draft.declaration = dict(BOTH_BOXES)
    VisaApplication.objects.all().delete()

    with pytest.raises(SessionIntegrityError):
        session.submit()
    assert session_data == {}


def test_transit_end_to_end(make_session, fill_steps, upload_all, session_data, visa_type):
    transit = visa_type('transit')
    assert visa_fee('transit', transit) == Decimal('30')

    session = fill_steps(make_session(), 'transit')
    upload_all(session, 'transit')
    assert session.submit_step(4, {}).accepted

    result = session.submit_step(5, BOTH_BOXES)
    app = VisaApplication.objects.get()

    assert result.accepted
    assert result.receipt.application_id == str(app.id)
    assert result.receipt.reference == app.reference
    assert app.status == 'submitted'
    assert app.uploaded_documents.count() == 5
    assert app.travel_info['final_destination'] == 'Nairobi'
    assert DraftStore(SessionStorage(session_data)).load() is None


def test_finalizer_pushes_every_section_before_submitting():
    api = mock.Mock()
    api.submit_application.return_value = {'id': '9', 'status': 'submitted', 'reference': 'VA-ABC123'}
    store = mock.Mock()
    draft = Draft(
        visa_type=VisaTypeSelection('transit', '5'),
        personal_info=PERSONAL_INFO,
        travel_info=travel_info('transit'),
        financial_info=FINANCIAL_INFO,
        declaration=dict(BOTH_BOXES),
        application_id='9',
        application_state='created',
    )
    for kind in ('passportCopy', 'photos', 'yellowFeverCertificate', 'onwardTicket', 'finalDestinationVisa'):
        draft.entry(kind).mark_uploaded(f'/media/{kind}.pdf', '1', f'{kind}.pdf', 1)

    receipt = SubmissionFinalizer(api, store).submit(draft)

    assert receipt == ('9', 'submitted', 'VA-ABC123')
    assert api.mock_calls[:4] == [
        mock.call.update_personal_info('9', PERSONAL_INFO),
        mock.call.update_travel_info('9', dict(travel_info('transit'), visa_type_id='5')),
        mock.call.update_financial_info('9', FINANCIAL_INFO),
        mock.call.submit_application('9'),
    ]
    store.clear.assert_called_once_with()
    assert draft.submitted
