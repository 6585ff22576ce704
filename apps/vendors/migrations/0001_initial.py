# Generated migration for vendor directory

import django.utils.timezone
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Vendor',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier (UUID)', primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False, help_text='Timestamp when record was created', verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when record was last updated', verbose_name='Updated At')),
                ('name', models.CharField(db_index=True, max_length=255, verbose_name='Name')),
                ('slug', models.SlugField(help_text='URL-safe identifier, unique across the directory', max_length=280, unique=True, verbose_name='Slug')),
                ('category', models.CharField(db_index=True, default='photographer', max_length=100, verbose_name='Primary Category')),
                ('categories', models.JSONField(blank=True, default=list, verbose_name='Categories')),
                ('location', models.CharField(blank=True, max_length=255, verbose_name='Location')),
                ('city', models.CharField(blank=True, db_index=True, max_length=100, verbose_name='City')),
                ('phone', models.CharField(blank=True, max_length=50, verbose_name='Phone')),
                ('email', models.CharField(blank=True, max_length=255, verbose_name='Email')),
                ('website', models.CharField(blank=True, max_length=500, verbose_name='Website')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('price_range', models.CharField(default='$$$', max_length=10, verbose_name='Price Range')),
                ('cultural_specialties', models.JSONField(blank=True, default=list, verbose_name='Cultural Specialties')),
                ('preferred_wedding_traditions', models.JSONField(blank=True, default=list, verbose_name='Preferred Wedding Traditions')),
                ('claimed', models.BooleanField(default=False, help_text='Whether the business owner has claimed this profile', verbose_name='Claimed')),
                ('is_ghost_profile', models.BooleanField(default=False, help_text='Created from discovery rather than by the vendor', verbose_name='Ghost Profile')),
                ('verified', models.BooleanField(default=False, verbose_name='Verified')),
                ('is_published', models.BooleanField(db_index=True, default=False, verbose_name='Published')),
                ('approval_status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], db_index=True, default='pending', max_length=20, verbose_name='Approval Status')),
            ],
            options={
                'verbose_name': 'Vendor',
                'verbose_name_plural': 'Vendors',
                'db_table': 'vendors',
                'ordering': ['name'],
            },
        ),
    ]
