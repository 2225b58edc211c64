from sqlalchemy import JSON, Column, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class NailTechs(Base):
    __tablename__ = 'nail_techs'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    is_default = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    slots = relationship('Slots', back_populates='nail_tech')


class Customers(Base):
    __tablename__ = 'customers'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    first_name = Column(Text)
    last_name = Column(Text)
    email = Column(Text)
    phone = Column(Text)
    social_media_name = Column(Text)
    referral_source = Column(Text)
    is_repeat_client = Column(Integer)  # NULL = unknown
    notes = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))


class Slots(Base):
    __tablename__ = 'slots'
    __table_args__ = (
        UniqueConstraint('nail_tech_id', 'date', 'time'),
        {'sqlite_autoincrement': True},  # ids of deleted slots are never reissued
    )

    nail_tech_id = Column(ForeignKey('nail_techs.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)  # YYYY-MM-DD
    time = Column(Text, nullable=False)  # HH:MM
    status = Column(Text, nullable=False, server_default=text("'available'"))
    id = Column(Integer, primary_key=True)
    slot_type = Column(Text, nullable=False, server_default=text("'regular'"))
    is_hidden = Column(Integer, nullable=False, server_default=text('0'))
    notes = Column(Text)
    # booking currently holding the slot; no FK, bookings may outlive slots and vice versa
    held_by_booking_id = Column(Integer)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    nail_tech = relationship('NailTechs', back_populates='slots')


class BlockedDates(Base):
    __tablename__ = 'blocked_dates'

    start_date = Column(Text, nullable=False)
    end_date = Column(Text, nullable=False)
    scope = Column(Text, nullable=False, server_default=text("'single'"))
    id = Column(Integer, primary_key=True)
    reason = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))


class Bookings(Base):
    __tablename__ = 'bookings'

    booking_code = Column(Text, nullable=False, unique=True)
    nail_tech_id = Column(ForeignKey('nail_techs.id'), nullable=False)
    # plain references: a slot may be deleted while the booking survives
    slot_id = Column(Integer, nullable=False)
    paired_slot_id = Column(Integer)
    linked_slot_ids = Column(JSON, nullable=False, default=list)
    service_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending_form'"))
    form_synced = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    customer_id = Column(ForeignKey('customers.id', ondelete='SET NULL'))
    client_type = Column(Text)
    service_location = Column(Text)
    form_response_id = Column(Text)
    customer_data = Column(JSON)
    customer_data_order = Column(JSON)
    date_changed = Column(Integer, nullable=False, server_default=text('0'))
    time_changed = Column(Integer, nullable=False, server_default=text('0'))
    validation_warnings = Column(JSON)
    cancel_reason = Column(Text)
    released_at = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    customer = relationship('Customers')

    @property
    def slot_ids(self) -> list[int]:
        """Primary slot followed by the linked run."""
        linked = list(self.linked_slot_ids or [])
        if not linked and self.paired_slot_id:
            linked = [self.paired_slot_id]
        return [self.slot_id, *linked]
