import asyncio
import logging

import requests

from scheduling.common.config import NOTIFICATION_TIMEOUT_SECONDS
from scheduling.common.dto import AppointmentEvent
from scheduling.ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


class WebhookNotifier(NotifierPort):
    """Posts appointment events to the notification service.

    Delivery is best effort: failures are logged and dropped.
    """

    def __init__(self, url: str, timeout: float = NOTIFICATION_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    def _post(self, event: AppointmentEvent) -> bool:
        logger.info(
            f"Sending {event.event_type.value} for appointment "
            f"{event.appointment.id} to {self.url}"
        )
        try:
            response = requests.post(
                self.url,
                data=event.model_dump_json(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to deliver notification: {e}")
            return False
        if response.status_code >= 400:
            logger.warning(
                f"Notification rejected. Status code: {response.status_code}"
            )
            return False
        logger.info(
            f"Notification delivered for appointment: {event.appointment.id}"
        )
        return True

    async def publish(self, event: AppointmentEvent) -> None:
        await asyncio.to_thread(self._post, event)
