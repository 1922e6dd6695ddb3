import pytest
from django.core.files.storage import InMemoryStorage
from django.core.files.uploadedfile import SimpleUploadedFile

from visas.choices import VisaKind, purpose_for, required_documents
from visas.models import VisaType
from visas.services.applications import ApplicationAPI
from visas.services.draft_store import SessionStorage
from visas.services.session import ApplicationSession
from visas.services.uploads import Completed, UploadPipeline

PERSONAL_INFO = {
    'first_name': 'Amina',
    'last_name': 'Diallo',
    'date_of_birth': '1990-04-12',
    'gender': 'female',
    'nationality': 'Senegalese',
    'marital_status': 'single',
    'passport_number': 'a1234567',
    'passport_issue_date': '2020-01-10',
    'passport_expiry_date': '2030-01-09',
    'passport_issuing_country': 'Senegal',
    'email': 'amina@example.com',
    'phone': '+221700000000',
    'address': '12 Rue Carnot',
    'country': 'Senegal',
    'city': 'Dakar',
    'postal_code': '10200',
}

FINANCIAL_INFO = {
    'funding_source': 'self',
    'monthly_income': '2500',
}


def travel_info(kind):
    data = {
        'visa_type': kind,
        'entry_date': '2026-12-01',
        'exit_date': '2026-12-20',
        'purpose_of_travel': purpose_for(kind),
        'port_of_entry': 'Addis Ababa Bole',
    }
    if kind == VisaKind.TRANSIT:
        data['final_destination'] = 'Nairobi'
    return data


def make_file(name='passport.pdf', size=1024, content_type='application/pdf'):
    return SimpleUploadedFile(name, b'x' * size, content_type=content_type)


def drain(events):
    return list(events)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def api():
    return ApplicationAPI()


@pytest.fixture
def session_data():
    # What request.session looks like to the draft store
    return {}


@pytest.fixture
def make_session(api, storage, session_data):
    def factory(api=api, **kwargs):
        kwargs.setdefault('pipeline', UploadPipeline(api, storage=storage))
        return ApplicationSession(SessionStorage(session_data), api, **kwargs)
    return factory


@pytest.fixture
def visa_type(db):
    def get(kind):
        # Seeded by the 0002 data migration
        return VisaType.objects.get(kind=kind)
    return get


@pytest.fixture
def fill_steps(visa_type):
    """
    Selects the visa type and completes steps 1-3.
    """
    def run(session, kind):
        session.select_visa_type(visa_type(kind))
        for step, values in ((1, PERSONAL_INFO), (2, travel_info(kind)), (3, FINANCIAL_INFO)):
            result = session.submit_step(step, values)
            assert result.accepted, result.errors
        return session
    return run


@pytest.fixture
def upload_all():
    def run(session, kind, skip=()):
        for document in required_documents(kind):
            if document in skip:
                continue
            events = drain(session.upload_document(document, make_file(f'{document.value}.pdf')))
            assert isinstance(events[-1], Completed), events
        return session
    return run
