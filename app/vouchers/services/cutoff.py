"""
Meal window cutoff policy.

Each meal window stops accepting voucher orders at a local cutoff time
(lunch 11:00, dinner 21:00 in Asia/Kolkata by default). The policy is a
pure function of an immutable CutoffConfig and the current instant; the
only mutable piece is CutoffConfigStore, which swaps whole configs.

Usage:
    from vouchers.services.cutoff import CutoffPolicy, get_cutoff_store

    policy = CutoffPolicy(get_cutoff_store().current)
    if not policy.is_open(MealWindow.LUNCH, now):
        ...

    # Admin update (last write wins)
    get_cutoff_store().update(lunch="11:30")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.apps import apps
from django.conf import settings
from django.utils import timezone

from vouchers.exceptions import VoucherValidationError
from vouchers.state_machines import MealWindow

logger = logging.getLogger(__name__)

DEFAULT_LUNCH_CUTOFF = time(11, 0)
DEFAULT_DINNER_CUTOFF = time(21, 0)
DEFAULT_CUTOFF_TIMEZONE = "Asia/Kolkata"

# Windows in service order; "next window" walks this list
WINDOW_ORDER = (MealWindow.LUNCH, MealWindow.DINNER)


def parse_cutoff_time(value: str | time, field_name: str = "cutoff") -> time:
    """
    Parse an HH:MM string into a time.

    Raises:
        VoucherValidationError: If the value is not a valid 24h HH:MM time
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    try:
        hours, minutes = str(value).strip().split(":")
        if len(hours) != 2 or len(minutes) != 2:
            raise ValueError(value)
        return time(int(hours), int(minutes))
    except (TypeError, ValueError):
        raise VoucherValidationError(
            f"Invalid {field_name} time '{value}', expected HH:MM",
            error_code="INVALID_CUTOFF_TIME",
            details={"field": field_name, "value": str(value)},
        ) from None


@dataclass(frozen=True)
class CutoffConfig:
    """
    Immutable cutoff configuration.

    Attributes:
        lunch: Local time lunch ordering closes
        dinner: Local time dinner ordering closes
        timezone: IANA zone the cutoff times are expressed in
    """

    lunch: time = DEFAULT_LUNCH_CUTOFF
    dinner: time = DEFAULT_DINNER_CUTOFF
    timezone: str = DEFAULT_CUTOFF_TIMEZONE

    def __post_init__(self):
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise VoucherValidationError(
                f"Unknown cutoff timezone '{self.timezone}'",
                error_code="INVALID_CUTOFF_TIMEZONE",
                details={"timezone": self.timezone},
            ) from None

    @classmethod
    def parse(
        cls,
        lunch: str | time = DEFAULT_LUNCH_CUTOFF,
        dinner: str | time = DEFAULT_DINNER_CUTOFF,
        timezone: str = DEFAULT_CUTOFF_TIMEZONE,
    ) -> CutoffConfig:
        """Build a config from HH:MM strings, validating each one."""
        return cls(
            lunch=parse_cutoff_time(lunch, "lunch"),
            dinner=parse_cutoff_time(dinner, "dinner"),
            timezone=timezone,
        )

    @classmethod
    def from_settings(cls) -> CutoffConfig:
        """Build the start-up config from MEAL_CUTOFF_* settings."""
        return cls.parse(
            lunch=getattr(settings, "MEAL_CUTOFF_LUNCH", DEFAULT_LUNCH_CUTOFF),
            dinner=getattr(settings, "MEAL_CUTOFF_DINNER", DEFAULT_DINNER_CUTOFF),
            timezone=getattr(settings, "MEAL_CUTOFF_TIMEZONE", DEFAULT_CUTOFF_TIMEZONE),
        )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def cutoff_for(self, window: str) -> time:
        """Cutoff time of a meal window."""
        if window == MealWindow.LUNCH:
            return self.lunch
        if window == MealWindow.DINNER:
            return self.dinner
        raise VoucherValidationError(
            f"Invalid meal window: {window}",
            error_code="INVALID_MEAL_WINDOW",
            details={"meal_window": str(window)},
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "lunch": self.lunch.strftime("%H:%M"),
            "dinner": self.dinner.strftime("%H:%M"),
            "timezone": self.timezone,
        }


@dataclass(frozen=True)
class CutoffStatus:
    """
    Result of CutoffPolicy.describe().

    Attributes:
        window: Meal window asked about
        cutoff_time: Cutoff of that window (HH:MM, local)
        is_open: Whether orders for the window are still accepted
        current_time: Local time the check was made (HH:MM)
        message: Human-readable summary
        next_window: First window still open today, else LUNCH
        next_window_date: Local date of next_window
    """

    window: str
    cutoff_time: str
    is_open: bool
    current_time: str
    message: str
    next_window: str
    next_window_date: str

    def to_dict(self) -> dict:
        return {
            "window": self.window,
            "cutoff_time": self.cutoff_time,
            "is_open": self.is_open,
            "current_time": self.current_time,
            "message": self.message,
            "next_window": self.next_window,
            "next_window_date": self.next_window_date,
        }


class CutoffPolicy:
    """
    Decides whether a meal window is still open at a given instant.

    Pure: the same config and instant always give the same answer.
    """

    def __init__(self, config: CutoffConfig):
        self.config = config

    def local_now(self, now: datetime | None = None) -> datetime:
        """Convert an aware instant into the cutoff timezone."""
        now = now or timezone.now()
        return now.astimezone(self.config.tzinfo)

    def is_open(self, window: str, now: datetime | None = None) -> bool:
        """True iff local time is strictly before the window's cutoff."""
        cutoff = self.config.cutoff_for(window)
        return self.local_now(now).time() < cutoff

    def next_window(self, now: datetime | None = None) -> tuple[str, datetime]:
        """
        First window still open today, otherwise tomorrow's LUNCH.

        Returns:
            (window, local date-time of that window's cutoff)
        """
        local = self.local_now(now)
        for window in WINDOW_ORDER:
            cutoff = self.config.cutoff_for(window)
            if local.time() < cutoff:
                return window, local.replace(
                    hour=cutoff.hour, minute=cutoff.minute, second=0, microsecond=0
                )

        tomorrow = local + timedelta(days=1)
        cutoff = self.config.cutoff_for(WINDOW_ORDER[0])
        return WINDOW_ORDER[0], tomorrow.replace(
            hour=cutoff.hour, minute=cutoff.minute, second=0, microsecond=0
        )

    def describe(self, window: str, now: datetime | None = None) -> CutoffStatus:
        """Structured cutoff information for one window."""
        local = self.local_now(now)
        cutoff = self.config.cutoff_for(window)
        cutoff_str = cutoff.strftime("%H:%M")
        is_open = local.time() < cutoff
        next_window, next_at = self.next_window(now)

        if is_open:
            message = f"{window} orders open until {cutoff_str}"
        else:
            message = f"{window} ordering closed. Cutoff was {cutoff_str}."

        return CutoffStatus(
            window=str(window),
            cutoff_time=cutoff_str,
            is_open=is_open,
            current_time=local.strftime("%H:%M"),
            message=message,
            next_window=str(next_window),
            next_window_date=next_at.date().isoformat(),
        )


class CutoffConfigStore:
    """
    Holder of the current CutoffConfig.

    Readers take `.current` without locking (a single attribute read of
    an immutable object). Writers replace the whole config under a lock,
    so concurrent admin updates resolve as last write wins and no reader
    ever sees a half-applied change.
    """

    def __init__(self, config: CutoffConfig | None = None):
        self._config = config or CutoffConfig()
        self._lock = threading.Lock()

    @property
    def current(self) -> CutoffConfig:
        return self._config

    def policy(self) -> CutoffPolicy:
        """Policy bound to the config current at call time."""
        return CutoffPolicy(self._config)

    def update(
        self,
        lunch: str | time | None = None,
        dinner: str | time | None = None,
    ) -> CutoffConfig:
        """
        Replace one or both cutoff times.

        Raises:
            VoucherValidationError: If a time is malformed (nothing changes)
        """
        changes = {}
        if lunch is not None:
            changes["lunch"] = parse_cutoff_time(lunch, "lunch")
        if dinner is not None:
            changes["dinner"] = parse_cutoff_time(dinner, "dinner")

        with self._lock:
            previous = self._config
            self._config = replace(previous, **changes)

        logger.info(
            "Meal cutoff times updated",
            extra={
                "previous": previous.to_dict(),
                "current": self._config.to_dict(),
            },
        )
        return self._config

    def reset(self, config: CutoffConfig | None = None) -> None:
        """Reinstall a config (start-up defaults when omitted)."""
        with self._lock:
            self._config = config or CutoffConfig.from_settings()


def get_cutoff_store() -> CutoffConfigStore:
    """Process-wide store created by VouchersConfig.ready()."""
    return apps.get_app_config("vouchers").cutoff_store


def get_default_policy() -> CutoffPolicy:
    """Policy for callers that were not handed one explicitly."""
    return get_cutoff_store().policy()
