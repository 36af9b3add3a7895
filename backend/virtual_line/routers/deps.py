# backend/virtual_line/routers/deps.py
"""
Shared router dependencies.

Identity comes from the upstream gateway as trusted headers:
    X-Caller-Role   driver | admin | probe
    X-Caller-Phone  caller's phone (any format)

The admin allow-list (settings.admin_phones) applies here, at the HTTP
boundary. The engine itself never checks roles.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..services.notifier import Notifier, get_notifier
from ..services.reservations import ReservationManager
from ..services.slots import HoldManager, ScheduleConfig, SlotStore, get_schedule_config
from ..utils.phone import normalize_phone

ROLES = ("driver", "admin", "probe")
STAFF_ROLES = ("admin", "probe")


@dataclass(frozen=True)
class Caller:
    role: str
    phone: Optional[str]


def get_caller(
    x_caller_role: str | None = Header(None),
    x_caller_phone: str | None = Header(None),
) -> Caller:
    role = (x_caller_role or "driver").strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown role {role!r}")
    return Caller(role=role, phone=normalize_phone(x_caller_phone))


def require_role(*roles: str):
    """Dependency factory: caller must have one of roles (and be allow-listed if staff)."""

    def checker(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        if caller.role in STAFF_ROLES and settings.admin_phones:
            allowed = {normalize_phone(p) for p in settings.admin_phones}
            if caller.phone is None or caller.phone not in allowed:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Not authorized for {caller.role}",
                )
        return caller

    return checker


def get_config() -> ScheduleConfig:
    return get_schedule_config()


def get_notifier_dep() -> Notifier:
    return get_notifier()


def get_slot_store(
    db: Session = Depends(get_db),
    config: ScheduleConfig = Depends(get_config),
) -> SlotStore:
    return SlotStore(db, config)


def get_hold_manager(
    db: Session = Depends(get_db),
    config: ScheduleConfig = Depends(get_config),
) -> HoldManager:
    return HoldManager(db, config)


def get_reservation_manager(
    db: Session = Depends(get_db),
    config: ScheduleConfig = Depends(get_config),
    notifier: Notifier = Depends(get_notifier_dep),
) -> ReservationManager:
    return ReservationManager(db, config, notifier)
