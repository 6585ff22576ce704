"""
Read-only vendor directory API.

Endpoints:
- GET /api/vendors/ - List vendors (filters: category, city, q, ghost, published)
- GET /api/vendors/{id}/ - Vendor detail
"""

from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from apps.core.permissions import IsViewer

from .models import Vendor
from .serializers import VendorSerializer


class VendorViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = VendorSerializer
    permission_classes = [IsAuthenticated, IsViewer]

    def get_queryset(self):
        queryset = Vendor.objects.all()

        category = self.request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)

        city = self.request.query_params.get('city')
        if city:
            queryset = queryset.filter(city__iexact=city)

        search = self.request.query_params.get('q')
        if search:
            queryset = queryset.filter(name__icontains=search)

        ghost = self.request.query_params.get('ghost')
        if ghost is not None:
            queryset = queryset.filter(is_ghost_profile=ghost.lower() == 'true')

        published = self.request.query_params.get('published')
        if published is not None:
            queryset = queryset.filter(is_published=published.lower() == 'true')

        return queryset
