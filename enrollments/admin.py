# enrollments/admin.py
"""
Admin configuration for enrollments app.
"""

from django.contrib import admin
from enrollments.models import Enrollment


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ('user', 'course', 'institution', 'status', 'enrolled_at',
                    'access_end_date', 'has_certificate')
    list_filter = ('status', 'institution', 'certificate_eligible')
    search_fields = ('user__username', 'user__email', 'course__title')
    date_hierarchy = 'enrolled_at'
    raw_id_fields = ('user', 'course', 'payment')
    readonly_fields = ('id', 'payment', 'certificate', 'certificate_eligible',
                       'enrolled_at', 'completed_at', 'expired_at', 'created_at', 'updated_at')

    fieldsets = (
        ('Enrollment', {
            'fields': ('id', 'user', 'course', 'institution', 'status', 'payment')
        }),
        ('Access', {
            'fields': ('access_start_date', 'access_end_date', 'enrolled_at', 'expired_at')
        }),
        ('Progress', {
            'fields': ('progress', 'completed_at')
        }),
        ('Certificate', {
            'fields': ('certificate', 'certificate_eligible')
        }),
    )

    def has_certificate(self, obj):
        return obj.certificate_id is not None
    has_certificate.boolean = True
    has_certificate.short_description = 'Certificate'
