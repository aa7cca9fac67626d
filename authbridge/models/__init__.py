from .migration import MigrationLog, MigrationStatus, UserMigration
from .user import AccountStage, User

__all__ = [
    "User",
    "AccountStage",
    "UserMigration",
    "MigrationLog",
    "MigrationStatus",
]
