# migrations/main.py
import argparse
import logging
import os

import boto3
from botocore.exceptions import ClientError

from scheduling.common.config import (
    APPOINTMENT_SLOTS_TABLE,
    APPOINTMENTS_TABLE,
    IDENTITY_TABLE,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

THROUGHPUT = {"ReadCapacityUnits": 5, "WriteCapacityUnits": 5}


def starts_at_index(name: str, hash_key: str) -> dict:
    return {
        "IndexName": name,
        "KeySchema": [
            {"AttributeName": hash_key, "KeyType": "HASH"},
            {"AttributeName": "starts_at", "KeyType": "RANGE"},
        ],
        "Projection": {"ProjectionType": "ALL"},
        "ProvisionedThroughput": THROUGHPUT,
    }


TABLE_DEFINITIONS = [
    {
        "TableName": IDENTITY_TABLE,
        "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "id", "AttributeType": "S"},
        ],
        "ProvisionedThroughput": THROUGHPUT,
    },
    {
        "TableName": APPOINTMENTS_TABLE,
        "KeySchema": [{"AttributeName": "id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "patient_id", "AttributeType": "S"},
            {"AttributeName": "doctor_id", "AttributeType": "S"},
            {"AttributeName": "starts_at", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            starts_at_index("PatientIndex", "patient_id"),
            starts_at_index("DoctorIndex", "doctor_id"),
        ],
        "ProvisionedThroughput": THROUGHPUT,
    },
    # One row per non-cancelled appointment; guards against double-booking
    {
        "TableName": APPOINTMENT_SLOTS_TABLE,
        "KeySchema": [{"AttributeName": "slot_key", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "slot_key", "AttributeType": "S"},
        ],
        "ProvisionedThroughput": THROUGHPUT,
    },
]


def get_dynamodb():
    return boto3.resource(
        "dynamodb", endpoint_url=os.getenv("AWS_ENDPOINT_URL")
    )


def create_tables(dynamodb=None):
    dynamodb = dynamodb or get_dynamodb()

    tables = []
    for definition in TABLE_DEFINITIONS:
        try:
            tables.append(dynamodb.create_table(**definition))
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceInUseException":
                logger.info(f"Table already exists: {definition['TableName']}")
            else:
                raise

    # Wait for tables to be created
    for table in tables:
        try:
            table.meta.client.get_waiter("table_exists").wait(
                TableName=table.name
            )
            logger.info(f"Table created successfully: {table.name}")
        except ClientError as e:
            logger.error(f"Error creating table {table.name}: {e}")


def delete_tables(dynamodb=None):
    dynamodb = dynamodb or get_dynamodb()

    for definition in TABLE_DEFINITIONS:
        table_name = definition["TableName"]
        try:
            dynamodb.Table(table_name).delete()
            logger.info(f"Table deleted successfully: {table_name}")
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                logger.info(f"Table does not exist: {table_name}")
            else:
                logger.error(f"Error deleting table {table_name}: {e}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create scheduling tables")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="delete existing tables before creating them",
    )
    args = parser.parse_args()

    logger.info("Starting migration process...")
    if args.reset:
        delete_tables()
    create_tables()
    logger.info("Migration process completed")
