from .generated import Base, FacilityInfo, SiteSettings, SlotReservations, TimeSlots

__all__ = [
    "Base",
    "FacilityInfo",
    "SiteSettings",
    "SlotReservations",
    "TimeSlots",
]
