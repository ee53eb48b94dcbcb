from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path(".data")
    log_level: str = "INFO"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])
    ping_message: str = "ping"
    paydunya_checkout_url: str = "https://paydunya.com/pay"
    paydunya_callback_secret: Optional[str] = None
    admin_email: str = "admin@example.com"
    admin_password: str = "admin"
    admin_name: str = "Admin"
    session_ttl_hours: float = 24.0
    port: int = 8080


def load_settings() -> Settings:
    origins = [
        origin.strip() for origin in os.environ.get("ALLOWED_ORIGINS", "*").split(",")
    ]
    return Settings(
        data_dir=Path(os.environ.get("DATA_DIR", ".data")),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        allowed_origins=[origin for origin in origins if origin],
        ping_message=os.environ.get("PING_MESSAGE", "ping"),
        paydunya_checkout_url=os.environ.get(
            "PAYDUNYA_CHECKOUT_URL", "https://paydunya.com/pay"
        ),
        paydunya_callback_secret=os.environ.get("PAYDUNYA_CALLBACK_SECRET") or None,
        admin_email=os.environ.get("ADMIN_EMAIL", "admin@example.com"),
        admin_password=os.environ.get("ADMIN_PASSWORD", "admin"),
        admin_name=os.environ.get("ADMIN_NAME", "Admin"),
        session_ttl_hours=float(os.environ.get("SESSION_TTL_HOURS", "24")),
        port=int(os.environ.get("PORT", "8080")),
    )
