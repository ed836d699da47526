"""
Admin configuration for core app.
"""

from django.contrib import admin
from core.models import Institution, Membership, Course, AuditLog


# ==============================================================================
# INSTITUTION ADMIN
# ==============================================================================

class MembershipInline(admin.TabularInline):
    model = Membership
    extra = 0
    fields = ('user', 'role', 'is_active')
    raw_id_fields = ('user',)


@admin.register(Institution)
class InstitutionAdmin(admin.ModelAdmin):
    list_display = ('name', 'slug', 'is_active', 'template_configured', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'slug')
    prepopulated_fields = {'slug': ('name',)}
    inlines = [MembershipInline]

    fieldsets = (
        ('Basic Info', {
            'fields': ('name', 'slug', 'is_active')
        }),
        ('Certificates', {
            'fields': ('certificate_template', 'certificate_folder')
        }),
        ('Advanced', {
            'fields': ('metadata',),
            'classes': ('collapse',)
        }),
    )

    @admin.display(boolean=True, description='Template')
    def template_configured(self, obj):
        return obj.has_certificate_template


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ('user', 'institution', 'role', 'is_active', 'joined_at')
    list_filter = ('role', 'is_active', 'institution')
    search_fields = ('user__username', 'user__email', 'institution__name')
    raw_id_fields = ('user',)


# ==============================================================================
# COURSE ADMIN
# ==============================================================================

@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ('title', 'institution', 'course_type', 'is_free', 'price_amount',
                    'currency', 'enrollment_count', 'is_published')
    list_filter = ('institution', 'course_type', 'is_free', 'is_published')
    search_fields = ('title',)
    raw_id_fields = ('instructor',)
    readonly_fields = ('enrollment_count',)


# ==============================================================================
# AUDIT LOG ADMIN (read-only)
# ==============================================================================

@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'resource', 'resource_id', 'user_email',
                    'user_role', 'institution', 'severity')
    list_filter = ('action', 'severity', 'institution')
    search_fields = ('resource_id', 'user_email', 'action')
    date_hierarchy = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
