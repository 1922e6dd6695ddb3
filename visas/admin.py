from django.contrib import admin
from .models import VisaType, VisaApplication, VisaApplicationDocument

# --- 1. Product Configuration ---


@admin.register(VisaType)
class VisaTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'kind', 'price', 'processing_time', 'is_active')
    search_fields = ('name',)
    list_filter = ('kind', 'is_active')
    prepopulated_fields = {'slug': ('name',)}

# --- 2. Applications (Client Data) ---


class ApplicationDocumentInline(admin.TabularInline):
    model = VisaApplicationDocument
    extra = 0
    # Files live in the object store; only the review fields are editable
    readonly_fields = ('document_type', 'file_name', 'file_path', 'file_size')


@admin.register(VisaApplication)
class VisaApplicationAdmin(admin.ModelAdmin):
    list_display = ('reference', 'applicant', 'visa_type',
                    'last_name', 'status', 'submission_date', 'created_at')
    list_filter = ('status', 'visa_type__kind')
    search_fields = ('reference', 'last_name', 'passport_number')
    readonly_fields = ('reference', 'draft_key', 'submission_date')
    inlines = [ApplicationDocumentInline]
