"""
Clinical permissions for API endpoints.

BUSINESS RULE: Reception and Accounting cannot access clinical data
(session notes, medicine photos, voice dictations).
"""
from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import RoleBasedPermission, get_user_roles

FRONT_DESK_ROLES = frozenset({RoleChoices.ADMIN, RoleChoices.PRACTITIONER, RoleChoices.RECEPTION})
CLINICAL_ROLES = frozenset({RoleChoices.ADMIN, RoleChoices.PRACTITIONER})


class IsClinicalStaff(permissions.BasePermission):
    """
    Permission for clinical endpoints.

    - Admin: Full access
    - Practitioner: Full access
    - Reception: NO ACCESS (business rule)
    - Accounting: NO ACCESS
    """

    def has_permission(self, request, view):
        return bool(get_user_roles(request) & CLINICAL_ROLES)


class PatientPermission(RoleBasedPermission):
    """
    - Admin, Practitioner, Reception: read, register, update
    - Accounting: read only (payments need the patient name)
    """
    read_roles = FRONT_DESK_ROLES | {RoleChoices.ACCOUNTING}
    write_roles = FRONT_DESK_ROLES
    delete_roles = frozenset({RoleChoices.ADMIN})


class AppointmentPermission(RoleBasedPermission):
    """
    - Admin, Practitioner, Reception: full access (book, reschedule, cancel, delete)
    - Accounting: read only
    """
    read_roles = FRONT_DESK_ROLES | {RoleChoices.ACCOUNTING}
    write_roles = FRONT_DESK_ROLES
    delete_roles = FRONT_DESK_ROLES


class SessionPermission(IsClinicalStaff):
    """Sessions carry clinical notes: Admin and Practitioner only."""


class VoiceRecordingPermission(IsClinicalStaff):
    """Dictations are clinical content: Admin and Practitioner only."""
