"""
Tests for the migration completion service.
"""

import pytest

from authbridge.core.exceptions import NotFoundError, ProviderError, ValidationError
from authbridge.crud import migration as migration_crud
from authbridge.crud import user as user_crud
from authbridge.models.migration import MigrationLog
from authbridge.models.user import User
from authbridge.services.migration_completion import MigrationCompletionService
from authbridge.services.provisioning import ShellAccountProvisioner


@pytest.fixture
def service(db, legacy_provider, identity_provider):
    return MigrationCompletionService(db, legacy_provider, identity_provider)


@pytest.fixture
def bridged_user(db, legacy_provider, identity_provider, unique_email):
    """A legacy user with a user row and a provisioned (unmigrated) shell."""
    legacy_user = legacy_provider.add_user(unique_email)
    db.add(User(email=unique_email, legacy_user_id=legacy_user["id"]))
    db.commit()
    ShellAccountProvisioner(db, legacy_provider, identity_provider).provision(
        legacy_user["id"]
    )
    return legacy_user


@pytest.mark.parametrize(
    "password,rule",
    [
        ("abc", "min_length"),
        ("alllower1", "uppercase"),
        ("ALLUPPER1", "lowercase"),
        ("NoDigitsHere", "digit"),
    ],
)
def test_weak_password_names_rule(service, bridged_user, password, rule):
    with pytest.raises(ValidationError) as exc_info:
        service.complete(bridged_user["id"], password)
    assert exc_info.value.rule == rule


def test_unknown_identifier(service, unique_email):
    with pytest.raises(NotFoundError):
        service.complete(unique_email, "NewSecret1")
    with pytest.raises(NotFoundError):
        service.complete("user_nobody", "NewSecret1")


def test_complete_by_legacy_id(
    db, service, bridged_user, legacy_provider, identity_provider, unique_email
):
    result = service.complete(bridged_user["id"], "NewSecret1")

    assert result.already_migrated is False
    entry = migration_crud.get_by_email(db, unique_email)
    assert entry.migrated is True
    assert entry.migrated_at is not None

    account = identity_provider.accounts[entry.new_user_id]
    assert account["password"] == "NewSecret1"
    assert account["user_metadata"]["migrated"] is True

    user = db.query(User).filter(User.email == unique_email).one()
    assert user.new_user_id == entry.new_user_id

    log_row = db.query(MigrationLog).filter(MigrationLog.email == unique_email).one()
    assert log_row.method == "session"
    assert log_row.new_user_id == entry.new_user_id
    assert legacy_provider.revoked == [bridged_user["id"]]


def test_complete_by_email_resolves_same_entry(
    db, service, bridged_user, identity_provider, unique_email
):
    result = service.complete(unique_email.upper(), "NewSecret1")

    assert result.entry.legacy_user_id == bridged_user["id"]
    log_row = db.query(MigrationLog).filter(MigrationLog.email == unique_email).one()
    assert log_row.method == "password_reset"


def test_second_completion_is_idempotent(
    db, service, bridged_user, identity_provider, unique_email
):
    service.complete(bridged_user["id"], "NewSecret1")
    entry = migration_crud.get_by_email(db, unique_email)

    result = service.complete(unique_email, "OtherSecret2")

    assert result.already_migrated is True
    assert identity_provider.accounts[entry.new_user_id]["password"] == "NewSecret1"
    assert db.query(MigrationLog).filter(MigrationLog.email == unique_email).count() == 1


def test_provider_failure_leaves_ledger_untouched(
    db, service, bridged_user, identity_provider, unique_email
):
    identity_provider.update_error = ProviderError(
        "unavailable", provider="supabase", status_code=500
    )

    with pytest.raises(ProviderError):
        service.complete(bridged_user["id"], "NewSecret1")

    db.expire_all()
    entry = migration_crud.get_by_email(db, unique_email)
    assert entry.migrated is False
    assert db.query(MigrationLog).filter(MigrationLog.email == unique_email).count() == 0


def test_session_revocation_failure_does_not_undo_migration(
    db, service, bridged_user, legacy_provider, unique_email
):
    legacy_provider.revoke_error = ProviderError("down", provider="clerk")

    result = service.complete(bridged_user["id"], "NewSecret1")

    assert result.already_migrated is False
    assert migration_crud.get_by_email(db, unique_email).migrated is True


def test_soft_deleted_entry_is_not_found(db, service, bridged_user):
    migration_crud.soft_delete(db, bridged_user["id"])
    with pytest.raises(NotFoundError):
        service.complete(bridged_user["id"], "NewSecret1")


def test_invited_user_has_no_legacy_sessions_to_revoke(
    db, service, legacy_provider, identity_provider, unique_email
):
    invited = user_crud.create_invited_user(db, unique_email)
    account_id = identity_provider.create_account(unique_email, "Temporary1")
    migration_crud.create_shell(db, unique_email, invited.legacy_user_id, account_id)

    result = service.complete(unique_email, "NewSecret1")

    assert result.already_migrated is False
    assert legacy_provider.revoked == []
