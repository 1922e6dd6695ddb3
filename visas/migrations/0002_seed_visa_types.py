from decimal import Decimal

from django.db import migrations


VISA_TYPES = [
    # (kind, name, price, processing_time, duration)
    ('tourist', 'Tourist Visa', Decimal('50'), '5-7 Business Days', '30 Days'),
    ('business', 'Business Visa', Decimal('100'), '5-7 Business Days', '90 Days'),
    ('work', 'Work Visa', Decimal('200'), '15-20 Business Days', '1 Year'),
    ('student', 'Student Visa', Decimal('75'), '10-15 Business Days', '1 Year'),
    ('transit', 'Transit Visa', Decimal('30'), '2-3 Business Days', '72 Hours'),
]


def seed_visa_types(apps, schema_editor):
    VisaType = apps.get_model('visas', 'VisaType')
    for kind, name, price, processing_time, duration in VISA_TYPES:
        VisaType.objects.get_or_create(
            slug=kind,
            defaults={
                'name': name,
                'kind': kind,
                'price': price,
                'processing_time': processing_time,
                'duration': duration,
            },
        )


def remove_visa_types(apps, schema_editor):
    VisaType = apps.get_model('visas', 'VisaType')
    VisaType.objects.filter(slug__in=[row[0] for row in VISA_TYPES]).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('visas', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_visa_types, remove_visa_types),
    ]
