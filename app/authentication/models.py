"""
Authentication models.

This module defines the identity models the billing core relies on:
- User: Custom user model with email-based authentication
- Organization: The team that acts as billing principal
- OrganizationMember: Membership store checked before any org-scoped billing

Related files:
    - managers.py: Custom user manager for email-based creation
    - payments.services.billing_gate: Consumes the membership store
"""

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email


class OrganizationRole(models.TextChoices):
    """Roles a user can hold inside an organization."""

    OWNER = "owner", "Owner"
    MEMBER = "member", "Member"


class Organization(UUIDPrimaryKeyMixin, BaseModel):
    """
    A team that owns bounties and pays for them.

    Every user gets a personal organization (is_personal=True) so that
    billing is always org-scoped, even for solo creators.

    Fields:
        name: Display name
        slug: Unique URL-safe handle
        is_personal: Whether this is a user's personal team
        billing_email: Contact used when registering the processor customer
    """

    name = models.CharField(
        max_length=200,
        help_text="Display name of the organization",
    )

    slug = models.SlugField(
        max_length=100,
        unique=True,
        help_text="Unique URL-safe handle",
    )

    is_personal = models.BooleanField(
        default=False,
        help_text="Whether this is a user's personal team",
    )

    billing_email = models.EmailField(
        blank=True,
        default="",
        help_text="Billing contact email (falls back to the acting member's email)",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Organization"
        verbose_name_plural = "Organizations"

    def __str__(self) -> str:
        return f"Organization({self.slug})"


class OrganizationMember(UUIDPrimaryKeyMixin, BaseModel):
    """
    Membership of a user in an organization.

    A row here is the only proof of membership; session claims about an
    active organization are checked against this table.
    """

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="members",
        help_text="Organization the user belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Member user",
    )

    role = models.CharField(
        max_length=20,
        choices=OrganizationRole.choices,
        default=OrganizationRole.MEMBER,
        help_text="Role within the organization",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Organization Member"
        verbose_name_plural = "Organization Members"
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "user"],
                name="unique_organization_member",
            ),
        ]
        indexes = [
            models.Index(fields=["user"], name="org_member_user_idx"),
        ]

    def __str__(self) -> str:
        return f"OrganizationMember({self.user_id}, {self.organization_id}, {self.role})"
