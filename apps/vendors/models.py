"""
Vendor directory models.
"""

from django.db import models

from apps.core.models import BaseModel


class Vendor(BaseModel):
    """
    A vendor listed in the public directory.

    Profiles promoted from discovery start as ghost profiles: published,
    unclaimed and unverified until the business claims them.
    """

    APPROVAL_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    DEFAULT_CATEGORY = 'photographer'
    DEFAULT_PRICE_RANGE = '$$$'

    name = models.CharField(
        max_length=255,
        db_index=True,
        verbose_name='Name'
    )

    slug = models.SlugField(
        max_length=280,
        unique=True,
        verbose_name='Slug',
        help_text='URL-safe identifier, unique across the directory'
    )

    category = models.CharField(
        max_length=100,
        default=DEFAULT_CATEGORY,
        db_index=True,
        verbose_name='Primary Category'
    )

    categories = models.JSONField(
        default=list,
        blank=True,
        verbose_name='Categories'
    )

    location = models.CharField(max_length=255, blank=True, verbose_name='Location')
    city = models.CharField(max_length=100, blank=True, db_index=True, verbose_name='City')
    phone = models.CharField(max_length=50, blank=True, verbose_name='Phone')
    email = models.CharField(max_length=255, blank=True, verbose_name='Email')
    website = models.CharField(max_length=500, blank=True, verbose_name='Website')
    description = models.TextField(blank=True, verbose_name='Description')

    price_range = models.CharField(
        max_length=10,
        default=DEFAULT_PRICE_RANGE,
        verbose_name='Price Range'
    )

    cultural_specialties = models.JSONField(
        default=list,
        blank=True,
        verbose_name='Cultural Specialties'
    )

    preferred_wedding_traditions = models.JSONField(
        default=list,
        blank=True,
        verbose_name='Preferred Wedding Traditions'
    )

    claimed = models.BooleanField(
        default=False,
        verbose_name='Claimed',
        help_text='Whether the business owner has claimed this profile'
    )

    is_ghost_profile = models.BooleanField(
        default=False,
        verbose_name='Ghost Profile',
        help_text='Created from discovery rather than by the vendor'
    )

    verified = models.BooleanField(default=False, verbose_name='Verified')
    is_published = models.BooleanField(default=False, db_index=True, verbose_name='Published')

    approval_status = models.CharField(
        max_length=20,
        choices=APPROVAL_STATUS_CHOICES,
        default='pending',
        db_index=True,
        verbose_name='Approval Status'
    )

    class Meta:
        db_table = 'vendors'
        ordering = ['name']
        verbose_name = 'Vendor'
        verbose_name_plural = 'Vendors'

    def __str__(self):
        return self.name

    @staticmethod
    def normalize_name(name):
        """Key used for duplicate detection: lower-cased and trimmed."""
        return (name or '').strip().lower()
