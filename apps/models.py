"""
Model registration for migrations: import all models that should be migrated by Alembic here.
When adding/removing apps, add/remove the corresponding imports here.
"""
from apps.identity.models import Tenant, User, UserSession
from apps.library.models import Model, ModelVersion, ModelFile, Tag, ModelTag
from apps.billing.models import RetentionRun, RetentionRunItem
from apps.account_deletion.models import AccountDeletionRun, AccountDeletionRunItem

__all__ = [
    "Tenant",
    "User",
    "UserSession",
    "Model",
    "ModelVersion",
    "ModelFile",
    "Tag",
    "ModelTag",
    "RetentionRun",
    "RetentionRunItem",
    "AccountDeletionRun",
    "AccountDeletionRunItem",
]
