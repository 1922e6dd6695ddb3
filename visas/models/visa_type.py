from django.db import models

from ..choices import VisaKind


class VisaType(models.Model):
    """
    The visa product an applicant picks before filling the form.
    e.g. "Tourist Visa - 30 days", "Transit Visa".
    """
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)

    # Closed enum: decides the required documents, never the free-text name
    kind = models.CharField(
        max_length=20, choices=VisaKind.choices, db_index=True)

    description = models.TextField(blank=True)

    # Pricing
    price = models.DecimalField(
        max_digits=10, decimal_places=2, help_text="Visa Fee")

    # Info
    processing_time = models.CharField(
        max_length=50, help_text="e.g. 5-7 Business Days")
    duration = models.CharField(
        max_length=50, blank=True, help_text="e.g. 30 Days")
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'visas_type'
        ordering = ['price']

    def __str__(self):
        return f"{self.name} ({self.get_kind_display()})"
