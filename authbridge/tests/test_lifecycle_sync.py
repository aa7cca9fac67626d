"""
Tests for legacy account deletion sync.
"""

import uuid

from authbridge.crud import migration as migration_crud
from authbridge.models.user import User
from authbridge.services.lifecycle_sync import LifecycleSync


def test_user_deleted_twice_is_soft_deleted_once(db, unique_email):
    legacy_id = f"user_{uuid.uuid4().hex[:12]}"
    user = User(email=unique_email, legacy_user_id=legacy_id)
    db.add(user)
    db.commit()
    migration_crud.create_shell(db, unique_email, legacy_id, "sb-life")
    sync = LifecycleSync(db)

    assert sync.handle_user_deleted(legacy_id) is True
    db.expire_all()
    entry = migration_crud.get_by_email(db, unique_email)
    first_entry_deleted_at = entry.deleted_at
    first_user_deleted_at = user.deleted_at
    assert first_entry_deleted_at is not None
    assert first_user_deleted_at is not None

    assert sync.handle_user_deleted(legacy_id) is False
    db.expire_all()
    assert migration_crud.get_by_email(db, unique_email).deleted_at == first_entry_deleted_at
    assert user.deleted_at == first_user_deleted_at


def test_deletion_keeps_migrated_flag(db, unique_email):
    legacy_id = f"user_{uuid.uuid4().hex[:12]}"
    migration_crud.create_shell(db, unique_email, legacy_id, "sb-life2")
    migration_crud.mark_migrated(db, unique_email)

    LifecycleSync(db).handle_user_deleted(legacy_id)

    db.expire_all()
    assert migration_crud.get_by_email(db, unique_email).migrated is True


def test_unknown_legacy_id_is_noop(db):
    assert LifecycleSync(db).handle_user_deleted("user_never_seen") is False
