import random
import string

from django.conf import settings
from django.db import models

from .visa_type import VisaType


def generate_visa_ref():
    suffix = ''.join(random.choices(
        string.ascii_uppercase + string.digits, k=6))
    return f"VA-{suffix}"


class VisaApplication(models.Model):
    STATUS_CHOICES = (
        ('pending', 'Draft (Pending Submission)'),
        ('submitted', 'Submitted'),
        ('under_review', 'Under Review'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    )

    reference = models.CharField(
        max_length=12, unique=True, db_index=True,
        default=generate_visa_ref, editable=False
    )

    applicant = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='visa_applications',
        null=True, blank=True
    )

    visa_type = models.ForeignKey(
        VisaType,
        on_delete=models.PROTECT,
        related_name='applications'
    )

    # Session key of the draft that created this record.
    # Unique so a repeated create for the same draft returns the same row.
    draft_key = models.CharField(
        max_length=64, unique=True, null=True, blank=True, editable=False)

    # Applicant Info (denormalised from personal_info for search & admin lists)
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    passport_number = models.CharField(max_length=50, blank=True)

    # Step data, stored as pushed by the applicant's session
    personal_info = models.JSONField(default=dict, blank=True)
    travel_info = models.JSONField(default=dict, blank=True)
    financial_info = models.JSONField(default=dict, blank=True)

    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default='pending')
    submission_date = models.DateTimeField(null=True, blank=True)

    # Admin Notes
    admin_notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visas_application'

    def __str__(self):
        return f"{self.reference} - {self.last_name or 'Unnamed'}"

    @property
    def is_editable(self):
        return self.status == 'pending'
