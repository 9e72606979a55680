from roleguard.authz.models import Permission, Role, RolePermission, SubjectPermission, SubjectRole
from roleguard.authz.schemas import PermissionCreate, PermissionRead, RoleCreate, RoleRead, RoleUpdate

__all__ = [
    "Role",
    "Permission",
    "RolePermission",
    "SubjectRole",
    "SubjectPermission",
    "RoleCreate",
    "RoleUpdate",
    "RoleRead",
    "PermissionCreate",
    "PermissionRead",
]
