import logging
from datetime import datetime

from scheduling.common.dto import (
    Appointment,
    AppointmentEvent,
    AppointmentEventType,
)
from scheduling.ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


async def emit(
    notifier: NotifierPort,
    event_type: AppointmentEventType,
    appointment: Appointment,
    occurred_at: datetime,
) -> None:
    """Hand an event to the notifier; failures never undo the change."""
    event = AppointmentEvent(
        event_type=event_type,
        appointment=appointment,
        occurred_at=occurred_at,
    )
    try:
        await notifier.publish(event)
    except Exception as e:
        logger.warning(
            f"Failed to publish {event_type.value} for appointment "
            f"{appointment.id}: {e}"
        )
