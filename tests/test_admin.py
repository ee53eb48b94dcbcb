from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from storefront_service.admin import AdminDirectory, AuthenticationFailed
from storefront_service.models import AdminUser
from storefront_service.service import MissingFields, NotFound
from storefront_service.store import JsonFileStore


@pytest.fixture()
def directory(tmp_path):
    admins = AdminDirectory(JsonFileStore(tmp_path / "admin-users.json", AdminUser))
    admins.ensure_default_user("manager@example.com", "Manager2026!", "Chef Manager")
    return admins


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def test_default_user_is_seeded_once(directory, tmp_path):
    directory.ensure_default_user("other@example.com", "pw", "Other")
    users = JsonFileStore(tmp_path / "admin-users.json", AdminUser).load()
    assert [user.email for user in users] == ["manager@example.com"]
    assert users[0].role == "manager"


def test_login_success_hides_password(directory):
    result = directory.login("manager@example.com", "Manager2026!")

    assert result["success"] is True
    assert "password" not in result["user"]
    assert result["session"]["user_id"] == "manager-001"
    assert result["session"]["role"] == "manager"
    assert directory.get_user("manager-001")["last_login"] == result["session"]["logged_in_at"]


def test_login_wrong_password(directory):
    with pytest.raises(AuthenticationFailed):
        directory.login("manager@example.com", "nope")


def test_login_unknown_email(directory):
    with pytest.raises(AuthenticationFailed):
        directory.login("ghost@example.com", "Manager2026!")


def test_login_requires_credentials(directory):
    with pytest.raises(MissingFields):
        directory.login("manager@example.com", "")


def test_check_session(directory):
    fresh = directory.check_session("manager-001", _iso(datetime.now(timezone.utc)))
    assert fresh["valid"] is True
    assert fresh["user"]["email"] == "manager@example.com"

    stale = directory.check_session(
        "manager-001", _iso(datetime.now(timezone.utc) - timedelta(hours=25))
    )
    assert stale == {"success": True, "valid": False, "reason": "Session expired"}

    unknown = directory.check_session("ghost", _iso(datetime.now(timezone.utc)))
    assert unknown["valid"] is False

    with pytest.raises(MissingFields):
        directory.check_session(None, None)


def test_get_unknown_user(directory):
    with pytest.raises(NotFound):
        directory.get_user("ghost")
