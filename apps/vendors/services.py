"""
Vendor directory operations used by the discovery pipeline.
"""

import logging
import uuid

from django.utils.text import slugify

from .models import Vendor

logger = logging.getLogger(__name__)

# Fields an approver may override when promoting a staged vendor
PROMOTION_OVERRIDE_FIELDS = ('name', 'location', 'city', 'phone', 'email', 'website', 'description')


def build_vendor_slug(name):
    """Slugified name plus a short random suffix so ghost profiles never collide."""
    base = slugify(name)[:260] or 'vendor'
    return f"{base}-{uuid.uuid4().hex[:6]}"


def vendor_name_index():
    """
    Map of normalized vendor name to vendor id for the whole directory.

    Used by the executor for duplicate detection.
    """
    index = {}
    for vendor_id, name in Vendor.objects.values_list('id', 'name'):
        index.setdefault(Vendor.normalize_name(name), vendor_id)
    return index


def promote_staged_vendor(staged, overrides=None):
    """
    Create a live directory entry from a staged vendor.

    The caller owns the transaction and the staged row's status change.

    Args:
        staged: StagedVendor being approved
        overrides: Optional dict replacing any of PROMOTION_OVERRIDE_FIELDS

    Returns:
        The created Vendor
    """
    overrides = {k: v for k, v in (overrides or {}).items() if k in PROMOTION_OVERRIDE_FIELDS and v is not None}

    name = overrides.get('name') or staged.name
    categories = list(staged.categories or [])
    category_max = Vendor._meta.get_field('category').max_length

    vendor = Vendor.objects.create(
        name=name,
        slug=build_vendor_slug(name),
        category=categories[0][:category_max] if categories else Vendor.DEFAULT_CATEGORY,
        categories=categories,
        location=overrides.get('location', staged.location),
        city=overrides.get('city', ''),
        phone=overrides.get('phone', staged.phone),
        email=overrides.get('email', staged.email),
        website=overrides.get('website', staged.website),
        description=overrides.get('description', staged.notes),
        price_range=staged.price_range or Vendor.DEFAULT_PRICE_RANGE,
        cultural_specialties=list(staged.cultural_specialties or []),
        preferred_wedding_traditions=list(staged.preferred_wedding_traditions or []),
        claimed=False,
        is_ghost_profile=True,
        verified=False,
        is_published=True,
        approval_status='approved',
    )

    logger.info(f"Promoted staged vendor {staged.id} to vendor {vendor.id} ({vendor.slug})")
    return vendor
