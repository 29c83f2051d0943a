"""
Django admin configuration for authentication models.

Registers User, Organization and OrganizationMember.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import Organization, OrganizationMember, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin configuration for the email-keyed User model."""

    list_display = ("email", "is_active", "is_staff", "date_joined")
    list_filter = ("is_active", "is_staff", "is_superuser", "date_joined")
    search_fields = ("email",)
    ordering = ("-date_joined",)

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Status", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )

    readonly_fields = ("date_joined", "last_login")


class OrganizationMemberInline(admin.TabularInline):
    model = OrganizationMember
    extra = 0
    raw_id_fields = ("user",)


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    """
    Admin configuration for Organization.

    Members are edited inline; removing a member revokes billing access
    on the next request.
    """

    list_display = ("name", "slug", "is_personal", "billing_email", "created_at")
    list_filter = ("is_personal",)
    search_fields = ("name", "slug", "billing_email")
    readonly_fields = ("id", "created_at", "updated_at")
    inlines = [OrganizationMemberInline]
