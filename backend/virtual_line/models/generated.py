from sqlalchemy import Column, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class SiteSettings(Base):
    __tablename__ = 'site_settings'

    site_id = Column(Integer, primary_key=True)
    date = Column(Text, primary_key=True)
    loads_target = Column(Integer, nullable=False)
    open_time = Column(Text, nullable=False)
    close_time = Column(Text, nullable=False)
    slot_interval = Column(Integer, nullable=False)
    workins_per_hour = Column(Integer, nullable=False, server_default=text('0'))
    disabled_count = Column(Integer, nullable=False, server_default=text('0'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))


class SlotReservations(Base):
    __tablename__ = 'slot_reservations'
    __table_args__ = (
        Index('idx_resv_probe', 'site_id', 'date', 'queue_code'),
        Index('idx_resv_phone', 'driver_phone'),
    )

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, nullable=False)
    date = Column(Text, nullable=False)
    slot_time = Column(Text, nullable=False)
    is_workin = Column(Integer, nullable=False, server_default=text('0'))
    driver_name = Column(Text)
    license_plate = Column(Text)
    vendor_name = Column(Text)
    farm_or_ticket = Column(Text)
    est_amount = Column(Float)
    est_unit = Column(Text)
    driver_phone = Column(Text)
    queue_code = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'reserved'"))  # reserved | canceled
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    canceled_at = Column(Text)

    slot = relationship('TimeSlots', back_populates='reservation', uselist=False)


class TimeSlots(Base):
    __tablename__ = 'time_slots'
    __table_args__ = (
        UniqueConstraint('site_id', 'date', 'slot_time', 'is_workin'),
        Index('idx_slots_hold_token', 'hold_token'),
        Index('idx_slots_hold_expires', 'hold_expires_at'),
    )

    id = Column(Integer, primary_key=True)
    site_id = Column(Integer, nullable=False)
    date = Column(Text, nullable=False)       # YYYY-MM-DD
    slot_time = Column(Text, nullable=False)  # HH:MM
    is_workin = Column(Integer, nullable=False, server_default=text('0'))
    disabled = Column(Integer, nullable=False, server_default=text('0'))
    hold_token = Column(Text)
    hold_expires_at = Column(Text)            # UTC, YYYY-MM-DD HH:MM:SS
    reservation_id = Column(ForeignKey('slot_reservations.id', ondelete='SET NULL'), unique=True)
    reserved_at = Column(Text)

    reservation = relationship('SlotReservations', back_populates='slot')


class FacilityInfo(Base):
    __tablename__ = 'facility_info'

    id = Column(Integer, primary_key=True, server_default=text('1'))
    facility_phone = Column(Text)
    support_phone = Column(Text)
    updated_at = Column(Text)
