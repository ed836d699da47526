# certificates/admin.py
"""
Admin configuration for certificates app.

Certificates are created by the issuance pipeline only. Staff may revoke
one by changing its status and reason; nothing else is editable.
"""

from django.contrib import admin
from django.utils.html import format_html
from certificates.models import Certificate


@admin.register(Certificate)
class CertificateAdmin(admin.ModelAdmin):
    list_display = ('id', 'recipient_name', 'course_name', 'institution', 'status',
                    'issue_date', 'pdf_link')
    list_filter = ('status', 'institution', 'issue_date')
    search_fields = ('id', 'recipient_name', 'course_name', 'user__email')
    date_hierarchy = 'issue_date'

    fieldsets = (
        ('Certificate', {
            'fields': ('id', 'enrollment', 'user', 'course', 'institution', 'status', 'revoked_reason')
        }),
        ('Snapshot', {
            'fields': ('recipient_name', 'course_name', 'institution_name', 'issue_date',
                       'expiry_date', 'grade', 'final_score')
        }),
        ('Documents', {
            'fields': ('template_ref', 'document_id', 'file_id', 'document_url', 'verification_url'),
            'classes': ('collapse',)
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        editable = {'status', 'revoked_reason'}
        return [f.name for f in self.model._meta.fields if f.name not in editable]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def pdf_link(self, obj):
        return format_html('<a href="{}" target="_blank">PDF</a>', obj.document_url)
    pdf_link.short_description = 'PDF'
