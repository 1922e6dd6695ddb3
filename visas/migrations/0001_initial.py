import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import visas.models.visa_application


VISA_KIND_CHOICES = [
    ('tourist', 'Tourist Visa'),
    ('business', 'Business Visa'),
    ('work', 'Work Visa'),
    ('student', 'Student Visa'),
    ('transit', 'Transit Visa'),
]

DOCUMENT_KIND_CHOICES = [
    ('passportCopy', 'Passport Copy (Bio Page)'),
    ('photos', 'Passport-sized Photos'),
    ('yellowFeverCertificate', 'Yellow Fever Vaccination Certificate'),
    ('travelInsurance', 'Travel Insurance Certificate'),
    ('invitationLetter', 'Invitation Letter'),
    ('employmentContract', 'Employment Contract/Job Offer'),
    ('workPermit', 'Work Permit Approval'),
    ('admissionLetter', 'Admission Letter'),
    ('academicTranscripts', 'Academic Transcripts'),
    ('criminalRecord', 'Criminal Record Certificate'),
    ('medicalCertificate', 'Medical Certificate'),
    ('onwardTicket', 'Onward Travel Ticket'),
    ('finalDestinationVisa', 'Visa for Final Destination'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='VisaType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('slug', models.SlugField(max_length=100, unique=True)),
                ('kind', models.CharField(choices=VISA_KIND_CHOICES, db_index=True, max_length=20)),
                ('description', models.TextField(blank=True)),
                ('price', models.DecimalField(decimal_places=2, help_text='Visa Fee', max_digits=10)),
                ('processing_time', models.CharField(help_text='e.g. 5-7 Business Days', max_length=50)),
                ('duration', models.CharField(blank=True, help_text='e.g. 30 Days', max_length=50)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'visas_type',
                'ordering': ['price'],
            },
        ),
        migrations.CreateModel(
            name='VisaApplication',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(db_index=True, default=visas.models.visa_application.generate_visa_ref, editable=False, max_length=12, unique=True)),
                ('draft_key', models.CharField(blank=True, editable=False, max_length=64, null=True, unique=True)),
                ('first_name', models.CharField(blank=True, max_length=100)),
                ('last_name', models.CharField(blank=True, max_length=100)),
                ('passport_number', models.CharField(blank=True, max_length=50)),
                ('personal_info', models.JSONField(blank=True, default=dict)),
                ('travel_info', models.JSONField(blank=True, default=dict)),
                ('financial_info', models.JSONField(blank=True, default=dict)),
                ('status', models.CharField(choices=[('pending', 'Draft (Pending Submission)'), ('submitted', 'Submitted'), ('under_review', 'Under Review'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('submission_date', models.DateTimeField(blank=True, null=True)),
                ('admin_notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('applicant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='visa_applications', to=settings.AUTH_USER_MODEL)),
                ('visa_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='applications', to='visas.visatype')),
            ],
            options={
                'db_table': 'visas_application',
            },
        ),
        migrations.CreateModel(
            name='VisaApplicationDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_type', models.CharField(choices=DOCUMENT_KIND_CHOICES, max_length=40)),
                ('file_name', models.CharField(max_length=255)),
                ('file_path', models.CharField(max_length=500)),
                ('file_size', models.PositiveBigIntegerField(default=0)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('verified', 'Verified'), ('rejected', 'Rejected')], default='pending', max_length=20)),
                ('rejection_reason', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('application', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='uploaded_documents', to='visas.visaapplication')),
            ],
            options={
                'db_table': 'visas_application_document',
                'constraints': [models.UniqueConstraint(fields=('application', 'document_type'), name='unique_document_per_type')],
            },
        ),
    ]
