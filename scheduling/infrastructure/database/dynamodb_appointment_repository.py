import logging
import os
from typing import AsyncIterator, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from scheduling.common.config import (
    APPOINTMENT_SLOTS_TABLE,
    APPOINTMENTS_TABLE,
)
from scheduling.common.dto import (
    Appointment,
    AppointmentFilter,
    AppointmentMutation,
    AppointmentStatus,
)
from scheduling.domain.exceptions import (
    InvalidTransitionException,
    LockContentionException,
    NotFoundException,
    SlotConflictException,
    UnavailableException,
)
from scheduling.infrastructure.database.serialization import to_item
from scheduling.ports.appointment_repository import AppointmentRepositoryPort

logger = logging.getLogger(__name__)


class DynamoDBAppointmentRepository(AppointmentRepositoryPort):
    """Appointments table plus a slot reservation table.

    A row in the reservation table exists for every non-cancelled
    appointment; inserting it conditionally is what makes double-booking
    impossible across processes.
    """

    def __init__(self, dynamodb=None):
        self.dynamodb = dynamodb or boto3.resource(
            "dynamodb", endpoint_url=os.getenv("AWS_ENDPOINT_URL")
        )
        self.table = self.dynamodb.Table(APPOINTMENTS_TABLE)
        self.client = self.table.meta.client

    @staticmethod
    def _to_item(appointment: Appointment) -> Dict:
        item = to_item(appointment)
        item["starts_at"] = appointment.starts_at.isoformat()
        return item

    @staticmethod
    def _from_item(item: Dict) -> Appointment:
        return Appointment(**item)

    async def create(self, appointment: Appointment) -> Appointment:
        logger.info(f"Attempting to create appointment: {appointment.id}")
        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": APPOINTMENT_SLOTS_TABLE,
                            "Item": {
                                "slot_key": appointment.slot_key,
                                "appointment_id": appointment.id,
                            },
                            "ConditionExpression": "attribute_not_exists(slot_key)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": APPOINTMENTS_TABLE,
                            "Item": self._to_item(appointment),
                            "ConditionExpression": "attribute_not_exists(id)",
                        }
                    },
                ]
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            reasons = [
                reason.get("Code")
                for reason in e.response.get("CancellationReasons", [])
            ]
            if code == "TransactionCanceledException":
                if reasons and reasons[0] == "ConditionalCheckFailed":
                    logger.warning(
                        f"Slot already booked: {appointment.slot_key}"
                    )
                    raise SlotConflictException(
                        f"Slot {appointment.slot_key} is already booked"
                    )
                if "TransactionConflict" in reasons:
                    raise LockContentionException(
                        f"Slot {appointment.slot_key} is being written"
                    )
            if code == "TransactionConflictException":
                raise LockContentionException(
                    f"Slot {appointment.slot_key} is being written"
                )
            logger.error(
                f"Error creating appointment: {e.response['Error']['Message']}"
            )
            raise UnavailableException("Appointment store unavailable")
        except BotoCoreError as e:
            logger.error(f"Error creating appointment: {e}")
            raise UnavailableException("Appointment store unavailable")
        logger.info(f"Appointment created successfully: {appointment.id}")
        return appointment

    async def get(self, appointment_id: str) -> Appointment:
        try:
            response = self.table.get_item(
                Key={"id": appointment_id}, ConsistentRead=True
            )
        except ClientError as e:
            logger.error(
                f"Error retrieving appointment: {e.response['Error']['Message']}"
            )
            raise UnavailableException("Appointment store unavailable")
        except BotoCoreError as e:
            logger.error(f"Error retrieving appointment: {e}")
            raise UnavailableException("Appointment store unavailable")
        if "Item" not in response:
            logger.info(f"Appointment not found: {appointment_id}")
            raise NotFoundException(f"Appointment {appointment_id} not found")
        logger.info(f"Appointment retrieved: {appointment_id}")
        return self._from_item(response["Item"])

    def _update_request(
        self, appointment_id: str, mutation: AppointmentMutation
    ) -> Dict:
        assignments = ["#status = :new_status", "updated_at = :updated_at"]
        values = {
            ":new_status": mutation.new_status.value,
            ":expected": mutation.expected_status.value,
            ":updated_at": mutation.updated_at.isoformat(),
        }
        if mutation.prescription is not None:
            assignments.append("prescription = :prescription")
            values[":prescription"] = mutation.prescription
        if mutation.cancelled_by is not None:
            assignments.append("cancelled_by = :cancelled_by")
            values[":cancelled_by"] = mutation.cancelled_by.value
        return {
            "Key": {"id": appointment_id},
            "UpdateExpression": "SET " + ", ".join(assignments),
            "ConditionExpression": "attribute_exists(id) AND #status = :expected",
            "ExpressionAttributeNames": {"#status": "status"},
            "ExpressionAttributeValues": values,
        }

    async def update(
        self, appointment_id: str, mutation: AppointmentMutation
    ) -> Appointment:
        logger.info(
            f"Attempting to move appointment {appointment_id} "
            f"to {mutation.new_status.value}"
        )
        current = await self.get(appointment_id)
        if current.status != mutation.expected_status:
            raise InvalidTransitionException(
                f"Appointment {appointment_id} is already "
                f"{current.status.value}"
            )
        request = self._update_request(appointment_id, mutation)
        try:
            if mutation.new_status == AppointmentStatus.CANCELLED:
                self.client.transact_write_items(
                    TransactItems=[
                        {
                            "Update": {
                                "TableName": APPOINTMENTS_TABLE,
                                **request,
                            }
                        },
                        {
                            "Delete": {
                                "TableName": APPOINTMENT_SLOTS_TABLE,
                                "Key": {"slot_key": current.slot_key},
                                "ConditionExpression": (
                                    "appointment_id = :appointment_id"
                                ),
                                "ExpressionAttributeValues": {
                                    ":appointment_id": appointment_id
                                },
                            }
                        },
                    ]
                )
                updated = await self.get(appointment_id)
            else:
                response = self.table.update_item(
                    **request, ReturnValues="ALL_NEW"
                )
                updated = self._from_item(response["Attributes"])
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code in (
                "ConditionalCheckFailedException",
                "TransactionCanceledException",
                "TransactionConflictException",
            ):
                logger.warning(
                    f"Lost update race on appointment {appointment_id}"
                )
                raise InvalidTransitionException(
                    f"Appointment {appointment_id} was modified concurrently"
                )
            logger.error(
                f"Error updating appointment: {e.response['Error']['Message']}"
            )
            raise UnavailableException("Appointment store unavailable")
        except BotoCoreError as e:
            logger.error(f"Error updating appointment: {e}")
            raise UnavailableException("Appointment store unavailable")
        logger.info(
            f"Appointment {appointment_id} is now {mutation.new_status.value}"
        )
        return updated

    def _query_request(self, criteria: AppointmentFilter) -> Optional[Dict]:
        if criteria.patient_id:
            condition = Key("patient_id").eq(criteria.patient_id)
            index = "PatientIndex"
        elif criteria.doctor_id:
            condition = Key("doctor_id").eq(criteria.doctor_id)
            index = "DoctorIndex"
        else:
            return None
        if criteria.date:
            condition = condition & Key("starts_at").begins_with(
                criteria.date.isoformat()
            )
        return {"IndexName": index, "KeyConditionExpression": condition}

    async def query(
        self, criteria: AppointmentFilter
    ) -> AsyncIterator[Appointment]:
        request = self._query_request(criteria)
        operation = self.table.scan if request is None else self.table.query
        kwargs = request or {}
        while True:
            try:
                response = operation(**kwargs)
            except ClientError as e:
                logger.error(
                    f"Error querying appointments: {e.response['Error']['Message']}"
                )
                raise UnavailableException("Appointment store unavailable")
            except BotoCoreError as e:
                logger.error(f"Error querying appointments: {e}")
                raise UnavailableException("Appointment store unavailable")
            for item in response.get("Items", []):
                appointment = self._from_item(item)
                if criteria.matches(appointment):
                    yield appointment
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
