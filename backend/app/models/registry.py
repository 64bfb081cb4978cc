# backend/app/models/registry.py
#
# Importing this module registers every mapped class on Base.metadata so
# string relationships resolve. Import it before touching the ORM.

from backend.app.models.user import RoleEnum, User
from backend.app.models.backup_code import BackupCode
from backend.app.models.capsule import Capsule, CapsuleStatus, ContentType

__all__ = [
    "RoleEnum",
    "User",
    "BackupCode",
    "Capsule",
    "CapsuleStatus",
    "ContentType",
]
