import json
from decimal import Decimal
from typing import Dict

from pydantic import BaseModel


def to_item(model: BaseModel) -> Dict:
    """Dump a model into a DynamoDB-safe item.

    DynamoDB rejects floats and empty values, so numbers go through
    Decimal and unset optionals are left out.
    """
    data = json.loads(model.model_dump_json(), parse_float=Decimal)
    return {k: v for k, v in data.items() if v is not None and v != []}
