# backend/virtual_line/services/slots/__init__.py
"""
Slot allocation engine: schedule generation, slot rows and holds.

Reservations live one level up (services/reservations.py) and build on
the store and hold primitives exported here.
"""

from .config import ScheduleConfig, SlotKind, get_schedule_config
from .calculator import GeneratedSchedule, generate_schedule, generate_dense_times
from .holds import HoldGrant, HoldManager, expire_holds
from .store import DaySchedule, ReservationView, SlotStore, SlotView

__all__ = [
    "ScheduleConfig",
    "SlotKind",
    "get_schedule_config",
    "GeneratedSchedule",
    "generate_schedule",
    "generate_dense_times",
    "HoldGrant",
    "HoldManager",
    "expire_holds",
    "DaySchedule",
    "ReservationView",
    "SlotStore",
    "SlotView",
]
