from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class VisaKind(models.TextChoices):
    TOURIST = 'tourist', _('Tourist Visa')
    BUSINESS = 'business', _('Business Visa')
    WORK = 'work', _('Work Visa')
    STUDENT = 'student', _('Student Visa')
    TRANSIT = 'transit', _('Transit Visa')


class DocumentKind(models.TextChoices):
    # Values are the documentType keys the document registry expects
    PASSPORT_COPY = 'passportCopy', _('Passport Copy (Bio Page)')
    PHOTOS = 'photos', _('Passport-sized Photos')
    YELLOW_FEVER_CERTIFICATE = 'yellowFeverCertificate', _(
        'Yellow Fever Vaccination Certificate')
    TRAVEL_INSURANCE = 'travelInsurance', _('Travel Insurance Certificate')
    INVITATION_LETTER = 'invitationLetter', _('Invitation Letter')
    EMPLOYMENT_CONTRACT = 'employmentContract', _(
        'Employment Contract/Job Offer')
    WORK_PERMIT = 'workPermit', _('Work Permit Approval')
    ADMISSION_LETTER = 'admissionLetter', _('Admission Letter')
    ACADEMIC_TRANSCRIPTS = 'academicTranscripts', _('Academic Transcripts')
    CRIMINAL_RECORD = 'criminalRecord', _('Criminal Record Certificate')
    MEDICAL_CERTIFICATE = 'medicalCertificate', _('Medical Certificate')
    ONWARD_TICKET = 'onwardTicket', _('Onward Travel Ticket')
    FINAL_DESTINATION_VISA = 'finalDestinationVisa', _(
        'Visa for Final Destination')


DOCUMENT_DESCRIPTIONS = {
    DocumentKind.PASSPORT_COPY: _("Clear color scan of your passport's bio page"),
    DocumentKind.PHOTOS: _("Recent photos (35mm x 45mm) with white background"),
    DocumentKind.YELLOW_FEVER_CERTIFICATE: _("Required for all travelers"),
    DocumentKind.TRAVEL_INSURANCE: _("Must cover medical emergencies during your stay"),
    DocumentKind.INVITATION_LETTER: _("From a local company or organization"),
    DocumentKind.EMPLOYMENT_CONTRACT: _("From a local employer"),
    DocumentKind.WORK_PERMIT: _("If already obtained"),
    DocumentKind.ADMISSION_LETTER: _("From a recognized educational institution"),
    DocumentKind.ACADEMIC_TRANSCRIPTS: _("Previous educational qualifications"),
    DocumentKind.CRIMINAL_RECORD: _("From your home country (not older than 6 months)"),
    DocumentKind.MEDICAL_CERTIFICATE: _("Confirming good health"),
    DocumentKind.ONWARD_TICKET: _("Showing your departure from the country"),
    DocumentKind.FINAL_DESTINATION_VISA: _("If required for your onward journey"),
}


# ========================================================
# 1. REQUIRED DOCUMENTS PER VISA KIND
# ========================================================

_BASE_DOCUMENTS = (
    DocumentKind.PASSPORT_COPY,
    DocumentKind.PHOTOS,
    DocumentKind.YELLOW_FEVER_CERTIFICATE,
)

REQUIRED_DOCUMENTS = {
    VisaKind.TOURIST: _BASE_DOCUMENTS + (
        DocumentKind.TRAVEL_INSURANCE,
    ),
    VisaKind.BUSINESS: _BASE_DOCUMENTS + (
        DocumentKind.INVITATION_LETTER,
    ),
    VisaKind.WORK: _BASE_DOCUMENTS + (
        DocumentKind.EMPLOYMENT_CONTRACT,
        DocumentKind.WORK_PERMIT,
        DocumentKind.CRIMINAL_RECORD,
        DocumentKind.MEDICAL_CERTIFICATE,
    ),
    VisaKind.STUDENT: _BASE_DOCUMENTS + (
        DocumentKind.ADMISSION_LETTER,
        DocumentKind.ACADEMIC_TRANSCRIPTS,
    ),
    VisaKind.TRANSIT: _BASE_DOCUMENTS + (
        DocumentKind.ONWARD_TICKET,
        DocumentKind.FINAL_DESTINATION_VISA,
    ),
}


def required_documents(kind):
    """
    Ordered tuple of document kinds that must be uploaded for a visa kind.
    Raises ValueError for anything outside VisaKind.
    """
    try:
        return REQUIRED_DOCUMENTS[VisaKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown visa kind: {kind!r}") from None


# ========================================================
# 2. FEES & DEFAULT TEXTS
# ========================================================

VISA_FEES = {
    VisaKind.TOURIST: Decimal('50'),
    VisaKind.BUSINESS: Decimal('100'),
    VisaKind.WORK: Decimal('200'),
    VisaKind.STUDENT: Decimal('75'),
    VisaKind.TRANSIT: Decimal('30'),
}

TRAVEL_PURPOSES = {
    VisaKind.TOURIST: "Tourism and leisure activities",
    VisaKind.BUSINESS: "Business meetings and professional activities",
    VisaKind.WORK: "Employment",
    VisaKind.STUDENT: "Educational purposes and studies",
    VisaKind.TRANSIT: "Transit to final destination",
}


def visa_fee(kind, visa_type=None):
    """
    Fee for a visa kind. A priced VisaType record wins over the default table.
    """
    if visa_type is not None and visa_type.price:
        return visa_type.price
    return VISA_FEES[VisaKind(kind)]


def purpose_for(kind):
    try:
        return TRAVEL_PURPOSES[VisaKind(kind)]
    except ValueError:
        return ""
