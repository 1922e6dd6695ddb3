from django.db import models

from ..choices import DocumentKind
from .visa_application import VisaApplication


class VisaApplicationDocument(models.Model):
    """
    Metadata of a file the applicant transferred to the object store.
    The file itself lives in storage; file_path is its public URL.
    """
    application = models.ForeignKey(
        VisaApplication,
        on_delete=models.CASCADE,
        related_name='uploaded_documents'
    )

    document_type = models.CharField(
        max_length=40, choices=DocumentKind.choices)

    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=500)
    file_size = models.PositiveBigIntegerField(default=0)

    # Logic: Admin can reject just ONE photo if it's blurry
    status = models.CharField(
        max_length=20,
        choices=(('pending', 'Pending'), ('verified', 'Verified'),
                 ('rejected', 'Rejected')),
        default='pending'
    )
    rejection_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visas_application_document'
        constraints = [
            models.UniqueConstraint(
                fields=['application', 'document_type'],
                name='unique_document_per_type'),
        ]

    def __str__(self):
        return f"{self.application.reference} - {self.get_document_type_display()}"
