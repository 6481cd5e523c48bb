import logging

from scheduling.common.dto import AppointmentEvent
from scheduling.ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


class LoggingNotifier(NotifierPort):
    async def publish(self, event: AppointmentEvent) -> None:
        appointment = event.appointment
        logger.info(
            f"{event.event_type.value}: appointment {appointment.id} "
            f"(doctor={appointment.doctor_id}, patient={appointment.patient_id}, "
            f"status={appointment.status.value})"
        )
