from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from .models import AdminRole, AdminUser, parse_timestamp, utc_now
from .service import MissingFields, NotFound
from .store import JsonFileStore

logger = logging.getLogger(__name__)


class AuthenticationFailed(Exception):
    """Raised on unknown email, inactive account or wrong password."""


class AdminDirectory:
    """Dashboard accounts kept in a flat JSON file.

    Passwords are compared as stored; there is no hashing or token issuing.
    """

    def __init__(self, store: JsonFileStore[AdminUser], session_ttl_hours: float = 24.0):
        self._store = store
        self._session_ttl_hours = session_ttl_hours

    def ensure_default_user(self, email: str, password: str, name: str) -> None:
        with self._store.lock:
            if self._store.load():
                return
            self._store.save(
                [
                    AdminUser(
                        id="manager-001",
                        email=email,
                        password=password,
                        name=name,
                        role=AdminRole.MANAGER,
                        created_at=utc_now(),
                    )
                ]
            )
        logger.info("Created default admin user %s", email)

    def login(self, email: Optional[str], password: Optional[str]) -> dict:
        if not email or not password:
            raise MissingFields("Email and password are required")
        with self._store.lock:
            users = self._store.load()
            user = next((u for u in users if u.email == email and u.is_active), None)
            if user is None or not hmac.compare_digest(
                user.password.encode("utf-8"), password.encode("utf-8")
            ):
                logger.warning("Failed admin login for %s", email)
                raise AuthenticationFailed("Email or password incorrect")
            now = utc_now()
            user.last_login = now
            self._store.save(users)
        logger.info("Admin %s logged in", user.id)
        return {
            "success": True,
            "user": user.public(),
            "session": {
                "user_id": user.id,
                "email": user.email,
                "name": user.name,
                "role": user.role,
                "logged_in_at": now,
            },
        }

    def check_session(self, user_id: Optional[str], logged_in_at: Optional[str]) -> dict:
        if not user_id or not logged_in_at:
            raise MissingFields("Missing session data")
        try:
            started = parse_timestamp(logged_in_at)
        except ValueError:
            return {"success": True, "valid": False, "reason": "Invalid session"}

        age_hours = (datetime.now(timezone.utc) - started).total_seconds() / 3600
        if age_hours > self._session_ttl_hours:
            return {"success": True, "valid": False, "reason": "Session expired"}

        user = self._find(user_id)
        if user is None or not user.is_active:
            return {"success": True, "valid": False, "reason": "User not found or inactive"}
        return {
            "success": True,
            "valid": True,
            "user": {"id": user.id, "email": user.email, "name": user.name, "role": user.role},
        }

    def get_user(self, user_id: str) -> dict:
        user = self._find(user_id)
        if user is None:
            raise NotFound("User not found")
        return user.public()

    def _find(self, user_id: str) -> AdminUser | None:
        with self._store.lock:
            users = self._store.load()
        return next((u for u in users if u.id == user_id), None)
