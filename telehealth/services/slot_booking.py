"""
Slot state machine.

    AVAILABLE --book--> BOOKED --release--> AVAILABLE
    AVAILABLE <--set_status--> BLOCKED
    AVAILABLE | BLOCKED --delete--> (removed)

Every transition is one conditional statement, so two requests racing for the
same slot cannot both win. The row is only re-read after a miss, to pick the
right error.
"""

import logging

from sqlalchemy.orm import Session

from telehealth.core.exceptions import ConflictError, NotFoundError, ValidationError
from telehealth.database import transaction
from telehealth.models.time_slot import SlotStatus, TimeSlot
from telehealth.repositories.scheduling_repository import SchedulingRepository
from telehealth.services.validation import require_positive_int

logger = logging.getLogger(__name__)

# BOOKED is reachable only through book().
PROVIDER_SETTABLE_STATUSES = (SlotStatus.AVAILABLE.value, SlotStatus.BLOCKED.value)

NOT_OWNED_MESSAGE = 'Time slot not found or you do not have permission to modify it'


def normalize_provider_status(value) -> str:
    raw = value.value if isinstance(value, SlotStatus) else value
    normalized = raw.strip().upper() if isinstance(raw, str) else raw
    if normalized not in PROVIDER_SETTABLE_STATUSES:
        raise ValidationError(
            'Status must be AVAILABLE or BLOCKED',
            details={'status': raw},
        )
    return normalized


class SlotBookingManager:
    def __init__(self, db: Session, repository: SchedulingRepository | None = None):
        self.db = db
        self.repository = repository or SchedulingRepository(db)

    def book(self, slot_id: int, consultation_id: int) -> TimeSlot:
        slot_id = require_positive_int(slot_id, 'slotId')
        consultation_id = require_positive_int(consultation_id, 'consultationId')

        with transaction(self.db):
            booked = self.repository.conditional_update_slot_status(
                slot_id,
                from_statuses=(SlotStatus.AVAILABLE.value,),
                to_fields={
                    TimeSlot.status: SlotStatus.BOOKED.value,
                    TimeSlot.consultation_id: consultation_id,
                },
            )
            if not booked:
                slot = self.repository.get_slot(slot_id)
                if slot is None:
                    raise NotFoundError('Time slot not found', details={'slot_id': slot_id})
                raise ConflictError(
                    'Time slot is not available',
                    details={'slot_id': slot_id, 'status': slot.status},
                )

        logger.info('Booked slot %s for consultation %s', slot_id, consultation_id)
        return self.repository.get_slot(slot_id)

    def release(self, slot_id: int) -> TimeSlot:
        slot_id = require_positive_int(slot_id, 'slotId')

        with transaction(self.db):
            released = self.repository.conditional_update_slot_status(
                slot_id,
                from_statuses=(SlotStatus.BOOKED.value,),
                to_fields={
                    TimeSlot.status: SlotStatus.AVAILABLE.value,
                    TimeSlot.consultation_id: None,
                },
            )
            if not released:
                slot = self.repository.get_slot(slot_id)
                if slot is None:
                    raise NotFoundError('Time slot not found', details={'slot_id': slot_id})
                if slot.status == SlotStatus.BLOCKED.value:
                    raise ConflictError(
                        'Cannot release a blocked time slot',
                        details={'slot_id': slot_id, 'status': slot.status},
                    )
                # Already available: releasing twice is harmless.
                return slot

        logger.info('Released slot %s', slot_id)
        return self.repository.get_slot(slot_id)

    def set_status(self, slot_id: int, status, provider_id: int) -> TimeSlot:
        slot_id = require_positive_int(slot_id, 'slotId')
        provider_id = require_positive_int(provider_id, 'providerId')
        target = normalize_provider_status(status)

        with transaction(self.db):
            updated = self.repository.conditional_update_slot_status(
                slot_id,
                from_statuses=PROVIDER_SETTABLE_STATUSES,
                to_fields={TimeSlot.status: target},
                provider_id=provider_id,
            )
            if not updated:
                self._raise_for_provider_miss(slot_id, provider_id, 'Cannot modify a booked time slot')

        return self.repository.get_slot(slot_id)

    def delete_slot(self, slot_id: int, provider_id: int) -> None:
        slot_id = require_positive_int(slot_id, 'slotId')
        provider_id = require_positive_int(provider_id, 'providerId')

        with transaction(self.db):
            deleted = self.repository.conditional_delete_slot(slot_id, provider_id, PROVIDER_SETTABLE_STATUSES)
            if not deleted:
                self._raise_for_provider_miss(slot_id, provider_id, 'Cannot delete a booked time slot')

        logger.info('Provider %s deleted slot %s', provider_id, slot_id)

    def _raise_for_provider_miss(self, slot_id: int, provider_id: int, booked_message: str) -> None:
        slot = self.repository.find_owned_slot(slot_id, provider_id)
        # Missing and foreign slots are indistinguishable to the caller.
        if slot is None:
            raise NotFoundError(NOT_OWNED_MESSAGE, details={'slot_id': slot_id})
        raise ConflictError(booked_message, details={'slot_id': slot_id, 'status': slot.status})
