"""
Payment permissions.

- Admin, Accounting: full access (tombstone delete included)
- Reception: read and record payments at the desk
- Practitioner: no access
"""
from apps.authz.models import RoleChoices
from apps.authz.permissions import RoleBasedPermission


class PaymentPermission(RoleBasedPermission):
    read_roles = frozenset({RoleChoices.ADMIN, RoleChoices.ACCOUNTING, RoleChoices.RECEPTION})
    write_roles = frozenset({RoleChoices.ADMIN, RoleChoices.ACCOUNTING, RoleChoices.RECEPTION})
    delete_roles = frozenset({RoleChoices.ADMIN, RoleChoices.ACCOUNTING})
