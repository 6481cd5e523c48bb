from abc import ABC, abstractmethod

from scheduling.common.dto import AppointmentEvent


class NotifierPort(ABC):
    @abstractmethod
    async def publish(self, event: AppointmentEvent) -> None:
        pass
