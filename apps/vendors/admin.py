from django.contrib import admin

from .models import Vendor


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'city', 'approval_status', 'is_published', 'is_ghost_profile', 'created_at']
    list_filter = ['approval_status', 'is_published', 'is_ghost_profile', 'category']
    search_fields = ['name', 'slug', 'city', 'website']
    readonly_fields = ['id', 'slug', 'created_at', 'updated_at']
