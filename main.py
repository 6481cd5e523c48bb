import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI

from scheduling.adapters.api import register_exception_handlers, router
from scheduling.common.config import (
    LOG_LEVEL,
    NOTIFICATION_WEBHOOK_URL,
    NOTIFICATIONS_ENABLED,
    ROOT_PATH,
    STORAGE_BACKEND,
)
from scheduling.domain.services.availability_service import (
    AvailabilityService,
)
from scheduling.domain.services.booking_service import BookingService
from scheduling.domain.services.identity_service import IdentityService
from scheduling.domain.services.lifecycle_service import LifecycleService
from scheduling.domain.services.query_service import QueryService
from scheduling.infrastructure.notifications.logging_notifier import (
    LoggingNotifier,
)
from scheduling.infrastructure.notifications.webhook_notifier import (
    WebhookNotifier,
)
from scheduling.ports.appointment_repository import AppointmentRepositoryPort
from scheduling.ports.identity_repository import IdentityRepositoryPort
from scheduling.ports.notifier import NotifierPort

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_repositories():
    if STORAGE_BACKEND == "dynamodb":
        from scheduling.infrastructure.database.dynamodb_appointment_repository import (
            DynamoDBAppointmentRepository,
        )
        from scheduling.infrastructure.database.dynamodb_identity_repository import (
            DynamoDBIdentityRepository,
        )

        logger.info("Using DynamoDB storage")
        return DynamoDBIdentityRepository(), DynamoDBAppointmentRepository()

    from scheduling.infrastructure.database.memory_appointment_repository import (
        InMemoryAppointmentRepository,
    )
    from scheduling.infrastructure.database.memory_identity_repository import (
        InMemoryIdentityRepository,
    )

    logger.info("Using in-memory storage")
    return InMemoryIdentityRepository(), InMemoryAppointmentRepository()


def build_notifier() -> NotifierPort:
    if NOTIFICATIONS_ENABLED and NOTIFICATION_WEBHOOK_URL:
        logger.info(f"Publishing notifications to {NOTIFICATION_WEBHOOK_URL}")
        return WebhookNotifier(NOTIFICATION_WEBHOOK_URL)
    return LoggingNotifier()


def create_app(
    identity_repository: Optional[IdentityRepositoryPort] = None,
    appointment_repository: Optional[AppointmentRepositoryPort] = None,
    notifier: Optional[NotifierPort] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    if identity_repository is None or appointment_repository is None:
        default_identity, default_appointments = build_repositories()
        identity_repository = identity_repository or default_identity
        appointment_repository = appointment_repository or default_appointments
    notifier = notifier or build_notifier()

    app = FastAPI(title="Scheduling Service", root_path=ROOT_PATH)

    identity = IdentityService(identity_repository, clock=clock)
    availability = AvailabilityService(identity_repository)
    app.state.identity_service = identity
    app.state.availability_service = availability
    app.state.booking_service = BookingService(
        identity, availability, appointment_repository, notifier, clock=clock
    )
    app.state.lifecycle_service = LifecycleService(
        appointment_repository, notifier, clock=clock
    )
    app.state.query_service = QueryService(
        appointment_repository, availability, clock=clock
    )

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
