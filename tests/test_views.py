import json

import pytest
from django.urls import reverse

from visas.models import VisaApplication

from conftest import FINANCIAL_INFO, PERSONAL_INFO, make_file, travel_info

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def memory_storage(settings):
    settings.STORAGES = {
        'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
        'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
    }


@pytest.fixture
def applicant(client, django_user_model):
    user = django_user_model.objects.create_user(username='amina', password='secret-pass-1')
    client.force_login(user)
    return user


def post_json(client, url, data=None):
    return client.post(url, data=json.dumps(data or {}), content_type='application/json')


def stream_events(response):
    body = b''.join(response.streaming_content).decode()
    return [json.loads(line) for line in body.splitlines() if line]


def walk_to_documents(client, visa_type, kind):
    post_json(client, reverse('api_visa_select_type'), {'visa_type_id': visa_type(kind).id})
    for step, values in ((1, PERSONAL_INFO), (2, travel_info(kind)), (3, FINANCIAL_INFO)):
        response = post_json(client, reverse('api_visa_step', args=[step]), values)
        assert response.status_code == 200, response.json()


def test_endpoints_require_login(client):
    response = client.get(reverse('api_visa_draft'))
    assert response.status_code == 302


def test_visa_types_list_fees_and_documents(client, applicant):
    response = client.get(reverse('api_visa_types'))
    data = response.json()

    assert data['status'] == 'success'
    transit = next(t for t in data['visa_types'] if t['kind'] == 'transit')
    assert transit['price'] == '30.00'
    assert [d['type'] for d in transit['documents']][-2:] == ['onwardTicket', 'finalDestinationVisa']


def test_step_validation_errors(client, applicant):
    response = post_json(client, reverse('api_visa_step', args=[1]), dict(PERSONAL_INFO, email='x'))

    assert response.status_code == 400
    assert response.json()['status'] == 'error'
    assert 'email' in response.json()['errors']


def test_unknown_step_and_document_type(client, applicant):
    assert post_json(client, reverse('api_visa_step', args=[7])).status_code == 404
    response = client.post(reverse('api_visa_upload_document', args=['selfie']),
                           {'file': make_file()})
    assert response.status_code == 404


def test_full_application_over_http(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'tourist')

    draft = client.get(reverse('api_visa_draft')).json()['draft']
    assert draft['current_step'] == 4
    assert draft['fee'] == '50.00'
    assert draft['application_id']

    for kind in ('passportCopy', 'photos', 'yellowFeverCertificate', 'travelInsurance'):
        response = client.post(reverse('api_visa_upload_document', args=[kind]),
                               {'file': make_file(f'{kind}.pdf')})
        assert response['Content-Type'] == 'application/x-ndjson'
        events = stream_events(response)
        assert events[-1]['event'] == 'completed', events

    draft = client.get(reverse('api_visa_draft')).json()['draft']
    assert all(draft['documents'][k] for k in ('passportCopy', 'travelInsurance'))
    assert [row['status'] for row in draft['required_documents']] == ['uploaded'] * 4

    assert post_json(client, reverse('api_visa_step', args=[4])).status_code == 200
    response = post_json(client, reverse('api_visa_step', args=[5]),
                         {'agree_to_terms': True, 'data_consent': True})

    assert response.status_code == 200
    receipt = response.json()['receipt']
    app = VisaApplication.objects.get()
    assert receipt['application_id'] == str(app.id)
    assert app.status == 'submitted'
    assert app.applicant == applicant

    mine = client.get(reverse('api_visa_applications')).json()
    assert [row['reference'] for row in mine['data']] == [app.reference]


def test_submit_reports_first_failed_precondition(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'business')
    response = post_json(client, reverse('api_visa_submit'))

    assert response.status_code == 400
    assert response.json()['code'] == 'declaration_incomplete'


def test_invalid_upload_is_streamed_as_failure(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'tourist')
    response = client.post(reverse('api_visa_upload_document', args=['photos']),
                           {'file': make_file('notes.txt', content_type='text/plain')})

    events = stream_events(response)
    assert events == [events[0]]
    assert events[0]['event'] == 'failed'
    assert events[0]['code'] == 'invalid_file'
    assert events[0]['document_type'] == 'photos'


def test_overlapping_uploads_of_different_kinds_are_all_kept(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'tourist')
    url = 'api_visa_upload_document'

    # Both requests start before either stream is read
    passport = client.post(reverse(url, args=['passportCopy']),
                           {'file': make_file('passport.pdf')})
    photos = client.post(reverse(url, args=['photos']),
                         {'file': make_file('me.jpg', content_type='image/jpeg')})
    assert stream_events(passport)[-1]['event'] == 'completed'
    assert stream_events(photos)[-1]['event'] == 'completed'

    draft = client.get(reverse('api_visa_draft')).json()['draft']
    assert draft['documents']['passportCopy'] is True
    assert draft['documents']['photos'] is True
    app = VisaApplication.objects.get()
    registered = app.uploaded_documents.values_list('document_type', flat=True)
    assert sorted(registered) == ['passportCopy', 'photos']


def test_vanished_application_returns_conflict(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'tourist')
    VisaApplication.objects.all().delete()

    response = client.get(reverse('api_visa_draft'))
    assert response.status_code == 409
    assert response.json()['draft']['current_step'] == 1


def test_back_and_discard(client, applicant, visa_type):
    walk_to_documents(client, visa_type, 'tourist')

    assert post_json(client, reverse('api_visa_back')).json()['draft']['current_step'] == 3
    assert post_json(client, reverse('api_visa_discard')).json()['draft']['current_step'] == 1


def test_admin_list_and_detail(admin_client, visa_type):
    app = VisaApplication.objects.create(
        visa_type=visa_type('student'), first_name='Kofi', last_name='Mensah',
        passport_number='G0001234')
    VisaApplication.objects.create(visa_type=visa_type('tourist'), status='submitted')

    data = admin_client.get(reverse('api_admin_visa_list'), {'search': 'mensah'}).json()
    assert [row['reference'] for row in data['data']] == [app.reference]
    assert data['stats']['pending'] == 1

    data = admin_client.get(reverse('api_admin_visa_list'), {'status': 'submitted'}).json()
    assert len(data['data']) == 1

    detail = admin_client.get(reverse('api_visa_details', args=[app.id])).json()
    assert detail['kind'] == 'student'
    assert detail['missing_documents'] == [
        'passportCopy', 'photos', 'yellowFeverCertificate', 'admissionLetter', 'academicTranscripts']


def test_admin_list_needs_permission(client, applicant):
    assert client.get(reverse('api_admin_visa_list')).status_code == 403
