from .members import User, RoleChangeEntry, MembershipRole, FORMAL_SEAT_ROLES
from .points import PointsEntry
from .compensation import AllocationRecord
from .settings import ConfigEntry
from .audit import AuditLog
from .communications import Notice

__all__ = [
    'User', 'RoleChangeEntry', 'MembershipRole', 'FORMAL_SEAT_ROLES',
    'PointsEntry',
    'AllocationRecord',
    'ConfigEntry',
    'AuditLog',
    'Notice',
]
