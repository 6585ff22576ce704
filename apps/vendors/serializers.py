"""
Serializers for the vendor directory.
"""

from rest_framework import serializers

from .models import Vendor


class VendorSerializer(serializers.ModelSerializer):

    class Meta:
        model = Vendor
        fields = [
            'id',
            'name',
            'slug',
            'category',
            'categories',
            'location',
            'city',
            'phone',
            'email',
            'website',
            'description',
            'price_range',
            'cultural_specialties',
            'preferred_wedding_traditions',
            'claimed',
            'is_ghost_profile',
            'verified',
            'is_published',
            'approval_status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields
