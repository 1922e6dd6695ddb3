import datetime
import mimetypes
import os
from collections import namedtuple

from django import forms
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from .choices import DocumentKind, VisaKind, required_documents

# ==========================================
# 1. STEP FORMS (Applicant Input)
# ==========================================

GENDER_CHOICES = (
    ('male', 'Male'),
    ('female', 'Female'),
    ('other', 'Other'),
)

MARITAL_STATUS_CHOICES = (
    ('single', 'Single'),
    ('married', 'Married'),
    ('divorced', 'Divorced'),
    ('widowed', 'Widowed'),
)

FUNDING_SOURCE_CHOICES = (
    ('self', 'Self-funded'),
    ('sponsor', 'Sponsor'),
    ('employer', 'Employer'),
    ('scholarship', 'Scholarship'),
)


class PersonalInfoForm(forms.Form):
    """
    Step 1: who the applicant is.
    """
    first_name = forms.CharField(
        max_length=100, min_length=2,
        error_messages={'required': _("First name is required")})
    last_name = forms.CharField(
        max_length=100, min_length=2,
        error_messages={'required': _("Last name is required")})
    date_of_birth = forms.DateField(
        error_messages={'required': _("Date of birth is required")})
    gender = forms.ChoiceField(
        choices=GENDER_CHOICES,
        error_messages={'required': _("Please select your gender")})
    nationality = forms.CharField(max_length=100)
    marital_status = forms.ChoiceField(
        choices=MARITAL_STATUS_CHOICES,
        error_messages={'required': _("Please select your marital status")})

    passport_number = forms.CharField(
        max_length=50, min_length=5,
        error_messages={'min_length': _("Valid passport number is required")})
    passport_issue_date = forms.DateField()
    passport_expiry_date = forms.DateField()
    passport_issuing_country = forms.CharField(max_length=100)

    email = forms.EmailField(
        error_messages={'invalid': _("Valid email address is required")})
    phone = forms.CharField(
        max_length=30, min_length=5,
        error_messages={'min_length': _("Valid phone number is required")})
    address = forms.CharField(
        max_length=255, min_length=5,
        error_messages={'min_length': _("Current address is required")})
    country = forms.CharField(max_length=100)
    city = forms.CharField(max_length=100)
    postal_code = forms.CharField(max_length=20)

    occupation = forms.CharField(max_length=100, required=False)
    employer_details = forms.CharField(required=False)

    def clean_passport_number(self):
        # Consistency: Force Uppercase & Trim
        passport = self.cleaned_data.get('passport_number')
        if passport:
            if not passport.replace(' ', '').isalnum():
                raise ValidationError(
                    _("Passport number should contain only letters and numbers."))
            return passport.replace(' ', '').upper()
        return passport

    def clean(self):
        cleaned_data = super().clean()
        issued = cleaned_data.get('passport_issue_date')
        expires = cleaned_data.get('passport_expiry_date')

        if issued and expires and expires <= issued:
            self.add_error('passport_expiry_date', _(
                "Passport expiry date must be after the issue date."))
        return cleaned_data


class TravelInfoForm(forms.Form):
    """
    Step 2: the trip. visa_kind (when given) is the kind picked at the start
    of the session; the form must agree with it.
    """
    visa_type = forms.ChoiceField(
        choices=VisaKind.choices,
        error_messages={'required': _("Visa type is required")})
    entry_date = forms.DateField(
        error_messages={'required': _("Entry date is required")})
    exit_date = forms.DateField(
        error_messages={'required': _("Exit date is required")})
    purpose_of_travel = forms.CharField(
        max_length=255,
        error_messages={'required': _("Purpose of travel is required")})

    port_of_entry = forms.CharField(max_length=100, required=False)
    accommodation_details = forms.CharField(required=False)
    travel_itinerary = forms.CharField(required=False)
    previous_visits = forms.BooleanField(required=False)
    previous_visit_details = forms.CharField(required=False)
    host_details = forms.CharField(required=False)
    final_destination = forms.CharField(max_length=100, required=False)
    countries_visited_after = forms.CharField(required=False)

    def __init__(self, *args, visa_kind=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.visa_kind = visa_kind

    def clean(self):
        cleaned_data = super().clean()
        entry = cleaned_data.get('entry_date')
        exit_ = cleaned_data.get('exit_date')
        visa_type = cleaned_data.get('visa_type')

        if entry and exit_ and exit_ < entry:
            self.add_error('exit_date', _(
                "Exit date cannot be before the entry date."))

        if cleaned_data.get('previous_visits') and not cleaned_data.get('previous_visit_details'):
            self.add_error('previous_visit_details', _(
                "Please describe your previous visits."))

        if visa_type == VisaKind.TRANSIT and not cleaned_data.get('final_destination'):
            self.add_error('final_destination', _(
                "Final destination is required for a transit visa."))

        # Integrity: the form cannot switch the visa picked at the start
        if self.visa_kind and visa_type and visa_type != self.visa_kind:
            self.add_error('visa_type', _(
                "Visa type does not match the visa you selected."))
        return cleaned_data


class FinancialInfoForm(forms.Form):
    """
    Step 3: how the trip is paid for.
    """
    funding_source = forms.ChoiceField(
        choices=FUNDING_SOURCE_CHOICES,
        error_messages={'required': _("Please select a funding source")})
    sponsor_details = forms.CharField(required=False)
    monthly_income = forms.CharField(max_length=50, required=False)

    def __init__(self, *args, visa_kind=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.visa_kind = visa_kind

    def clean(self):
        """
        Logic Validation: If funding_source is 'sponsor', sponsor_details MUST be filled.
        Scholarships are only offered to student visas.
        """
        cleaned_data = super().clean()
        source = cleaned_data.get('funding_source')

        if source == 'sponsor' and not cleaned_data.get('sponsor_details'):
            self.add_error('sponsor_details', _(
                "Sponsor details are required when the trip is sponsored."))

        if source == 'scholarship' and self.visa_kind and self.visa_kind != VisaKind.STUDENT:
            self.add_error('funding_source', _(
                "Scholarship funding is only available for student visas."))
        return cleaned_data


class DocumentsForm(forms.Form):
    """
    Step 4: one flag per document kind. The flags are derived from the
    upload entries by the session, never typed in by the applicant.
    """

    def __init__(self, *args, visa_kind=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.visa_kind = visa_kind
        for kind in DocumentKind:
            self.fields[kind.value] = forms.BooleanField(
                required=False, label=kind.label)

    def clean(self):
        cleaned_data = super().clean()
        if not self.visa_kind:
            raise ValidationError(_("Select a visa type before uploading documents."))

        for kind in required_documents(self.visa_kind):
            if not cleaned_data.get(kind.value):
                self.add_error(kind.value, _(f"{kind.label} is required"))
        return cleaned_data


class DeclarationForm(forms.Form):
    """
    Step 5: both boxes must be ticked.
    """
    agree_to_terms = forms.BooleanField(
        error_messages={'required': _("You must agree to the terms and conditions")})
    data_consent = forms.BooleanField(
        error_messages={'required': _("You must consent to data processing")})


# ==========================================
# 2. FIELD-SET VALIDATOR
# ==========================================

STEP_FORMS = {
    'personal_info': PersonalInfoForm,
    'travel_info': TravelInfoForm,
    'financial_info': FinancialInfoForm,
    'documents': DocumentsForm,
    'declaration': DeclarationForm,
}

# Step number -> step name (1-based, in the order the applicant sees them)
STEP_NAMES = tuple(STEP_FORMS)

# Forms whose rules depend on the selected visa kind
_KIND_AWARE = (TravelInfoForm, FinancialInfoForm, DocumentsForm)


class FieldSetResult(namedtuple('FieldSetResult', ['values', 'errors'])):
    __slots__ = ()

    @property
    def ok(self):
        return not self.errors


def _normalise(value):
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


def _prepare(candidate_values):
    # None means "not answered": drop it so optional fields get their defaults
    return {k: v for k, v in dict(candidate_values or {}).items() if v is not None}


def validate(step_name, candidate_values, visa_kind=None):
    """
    Validate one step's values. Pure: no I/O, no side effects.

    Returns FieldSetResult(values, errors):
      - on success values holds the normalised record (dates as ISO strings,
        unset optional text as "", unset booleans as False) and errors is {}.
      - on failure values is None and errors maps field -> first message.
    """
    try:
        form_class = STEP_FORMS[step_name]
    except KeyError:
        raise ValueError(f"Unknown step: {step_name!r}") from None

    kwargs = {}
    if form_class in _KIND_AWARE:
        kwargs['visa_kind'] = visa_kind

    form = form_class(data=_prepare(candidate_values), **kwargs)

    if not form.is_valid():
        errors = {field: str(messages[0])
                  for field, messages in form.errors.items()}
        return FieldSetResult(None, errors)

    values = {name: _normalise(form.cleaned_data.get(name))
              for name in form.fields}
    return FieldSetResult(values, {})


# ==========================================
# 3. DOCUMENT FILE FORM (Upload Input)
# ==========================================

DEFAULT_ALLOWED_TYPES = {
    'application/pdf': ('.pdf',),
    'image/jpeg': ('.jpg', '.jpeg'),
    'image/png': ('.png',),
}


class DocumentFileForm(forms.Form):
    """
    Validates file uploads (Size, Type, Extension) before any transfer starts.
    """
    file = forms.FileField(allow_empty_file=False)

    def __init__(self, *args, max_size_mb=None, allowed_types=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_size_mb = max_size_mb or getattr(
            settings, 'VISA_DOCUMENT_MAX_SIZE_MB', 5)
        self.allowed_types = allowed_types or getattr(
            settings, 'VISA_DOCUMENT_ALLOWED_TYPES', DEFAULT_ALLOWED_TYPES)

    def clean_file(self):
        uploaded_file = self.cleaned_data.get('file')

        if uploaded_file:
            # 1. Size Validation
            limit_mb = self.max_size_mb
            if uploaded_file.size > limit_mb * 1024 * 1024:
                raise ValidationError(
                    _(f"File too large. Size should not exceed {limit_mb} MB."))

            # 2. Type Validation (declared mime type, else guessed from the name)
            ext = os.path.splitext(uploaded_file.name)[1].lower()
            content_type = getattr(uploaded_file, 'content_type', None) \
                or mimetypes.guess_type(uploaded_file.name)[0]
            valid_extensions = self.allowed_types.get(content_type)
            if not valid_extensions or ext not in valid_extensions:
                raise ValidationError(
                    _("Unsupported file type. Allowed: PDF, JPG, PNG."))

        return uploaded_file
