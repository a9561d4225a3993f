"""Configuration handling for the workshop bot."""

import logging
import os
from dataclasses import dataclass, field
from datetime import time
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .crawler import DEFAULT_DETAIL_URL, DEFAULT_LISTING_URL, DEFAULT_TIMEOUT
from .dates import DEFAULT_TIMEZONE
from .poller import DEFAULT_POLL_INTERVAL
from .reminders import DEFAULT_RESTART_TIMES

DEFAULT_REQUESTS_PER_SECOND = 1.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    discord_token: Optional[str] = None
    discord_broadcast_token: Optional[str] = None
    channel_id: Optional[int] = None
    notifications_channel_id: Optional[int] = None
    all_channel_id: Optional[int] = None
    notifications_role_id: Optional[int] = None
    webhook_url: Optional[str] = None
    broadcast_webhook_url: Optional[str] = None
    listing_url: str = DEFAULT_LISTING_URL
    detail_url: str = DEFAULT_DETAIL_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    request_timeout: float = DEFAULT_TIMEOUT
    timezone: str = DEFAULT_TIMEZONE
    restart_times: Tuple[time, ...] = field(default=DEFAULT_RESTART_TIMES)
    log_level: str = DEFAULT_LOG_LEVEL


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def _optional_int(name: str) -> Optional[int]:
    raw = _optional(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def parse_restart_times(raw: str) -> Tuple[time, ...]:
    """Parse ``"06:00,18:00"`` into a tuple of times."""
    times = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            hour, minute = part.split(":")
            times.append(time(hour=int(hour), minute=int(minute)))
        except ValueError as exc:
            raise ValueError(f"RESTART_TIMES entry {part!r} must be HH:MM") from exc
    return tuple(times)


def get_settings() -> Settings:
    """Load settings from environment variables, raising on invalid values."""
    load_dotenv()

    token = _optional("DISCORD_TOKEN")
    webhook = _optional("DISCORD_WEBHOOK_URL")
    if not token and not webhook:
        raise ValueError("DISCORD_TOKEN or DISCORD_WEBHOOK_URL is required")

    channel_id = _optional_int("DISCORD_CHANNEL_ID")
    if token and channel_id is None:
        raise ValueError("DISCORD_CHANNEL_ID is required when DISCORD_TOKEN is set")

    tz_name = os.getenv("TIMEZONE", DEFAULT_TIMEZONE).strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown TIMEZONE {tz_name!r}") from exc

    log_level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(
            "LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR or CRITICAL"
        )

    restart_raw = _optional("RESTART_TIMES")
    restart_times = (
        parse_restart_times(restart_raw) if restart_raw else DEFAULT_RESTART_TIMES
    )

    return Settings(
        discord_token=token,
        discord_broadcast_token=_optional("DISCORD_BROADCAST_TOKEN"),
        channel_id=channel_id,
        notifications_channel_id=_optional_int("DISCORD_CHANNEL_SERVER_NOTIFICATIONS_ID"),
        all_channel_id=_optional_int("DISCORD_CHANNEL_ALL_ID"),
        notifications_role_id=_optional_int("DISCORD_ROLE_SERVER_NOTIFICATIONS_ID"),
        webhook_url=webhook,
        broadcast_webhook_url=_optional("DISCORD_BROADCAST_WEBHOOK_URL"),
        listing_url=os.getenv("LISTING_URL", DEFAULT_LISTING_URL).strip(),
        detail_url=os.getenv("DETAIL_URL", DEFAULT_DETAIL_URL).strip(),
        poll_interval=_positive_float("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL),
        requests_per_second=_positive_float("REQUESTS_PER_SECOND", DEFAULT_REQUESTS_PER_SECOND),
        request_timeout=_positive_float("REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        timezone=tz_name,
        restart_times=restart_times,
        log_level=log_level,
    )
