import logging
import os
from typing import Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from scheduling.common.config import IDENTITY_TABLE
from scheduling.common.dto import Doctor, Patient
from scheduling.domain.exceptions import (
    NotFoundException,
    UnavailableException,
)
from scheduling.infrastructure.database.serialization import to_item
from scheduling.ports.identity_repository import IdentityRepositoryPort

logger = logging.getLogger(__name__)


class DynamoDBIdentityRepository(IdentityRepositoryPort):
    def __init__(self, dynamodb=None):
        self.dynamodb = dynamodb or boto3.resource(
            "dynamodb", endpoint_url=os.environ.get("AWS_ENDPOINT_URL")
        )
        self.table = self.dynamodb.Table(IDENTITY_TABLE)

    def _put(self, item: Dict, condition: str) -> None:
        try:
            self.table.put_item(Item=item, ConditionExpression=condition)
        except ClientError as e:
            if (
                e.response["Error"]["Code"]
                == "ConditionalCheckFailedException"
            ):
                if condition.startswith("attribute_exists"):
                    raise NotFoundException(f"Identity {item['id']} not found")
                logger.warning(f"Identity already exists: {item['id']}")
                raise UnavailableException(
                    f"Identity already exists: {item['id']}"
                )
            logger.error(
                f"Error saving identity: {e.response['Error']['Message']}"
            )
            raise UnavailableException("Identity directory unavailable")
        except BotoCoreError as e:
            logger.error(f"Error saving identity: {e}")
            raise UnavailableException("Identity directory unavailable")

    def _get(self, identity_id: str, role: str) -> Optional[Dict]:
        logger.info(f"Attempting to retrieve {role}: {identity_id}")
        try:
            response = self.table.get_item(Key={"id": identity_id})
        except ClientError as e:
            logger.error(
                f"Error retrieving {role}: {e.response['Error']['Message']}"
            )
            raise UnavailableException("Identity directory unavailable")
        except BotoCoreError as e:
            logger.error(f"Error retrieving {role}: {e}")
            raise UnavailableException("Identity directory unavailable")
        item = response.get("Item")
        if item is None or item.get("role") != role:
            logger.info(f"{role.capitalize()} not found: {identity_id}")
            return None
        return item

    async def create_doctor(self, doctor: Doctor) -> Doctor:
        logger.info(f"Attempting to create doctor: {doctor.id}")
        self._put(to_item(doctor), "attribute_not_exists(id)")
        logger.info(f"Doctor created successfully: {doctor.id}")
        return doctor

    async def update_doctor(self, doctor: Doctor) -> Doctor:
        self._put(to_item(doctor), "attribute_exists(id)")
        logger.info(f"Doctor updated successfully: {doctor.id}")
        return doctor

    async def get_doctor(self, doctor_id: str) -> Optional[Doctor]:
        item = self._get(doctor_id, "doctor")
        return Doctor(**item) if item else None

    async def list_doctors(self) -> List[Doctor]:
        logger.info("Attempting to retrieve all doctors")
        kwargs = {"FilterExpression": Attr("role").eq("doctor")}
        doctors = []
        while True:
            try:
                response = self.table.scan(**kwargs)
            except ClientError as e:
                logger.error(
                    f"Error retrieving doctors: {e.response['Error']['Message']}"
                )
                raise UnavailableException("Identity directory unavailable")
            except BotoCoreError as e:
                logger.error(f"Error retrieving doctors: {e}")
                raise UnavailableException("Identity directory unavailable")
            doctors.extend(Doctor(**item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        logger.info(f"Retrieved {len(doctors)} doctors")
        return doctors

    async def create_patient(self, patient: Patient) -> Patient:
        logger.info(f"Attempting to create patient: {patient.id}")
        self._put(to_item(patient), "attribute_not_exists(id)")
        logger.info(f"Patient created successfully: {patient.id}")
        return patient

    async def update_patient(self, patient: Patient) -> Patient:
        self._put(to_item(patient), "attribute_exists(id)")
        logger.info(f"Patient updated successfully: {patient.id}")
        return patient

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        item = self._get(patient_id, "patient")
        return Patient(**item) if item else None
