"""
Authentication application.

Provides the email-based User model and the organization membership store
that the billing core consults before acting on an organization's behalf.

Usage:
    from authentication.models import Organization, OrganizationMember, User
"""
