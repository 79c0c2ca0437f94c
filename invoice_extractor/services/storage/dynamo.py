"""
DynamoDB-backed invoice state store.

Items are keyed by messageId (partition) and attachmentKey (sort). Writes use
UpdateItem with a generated SET expression so only the given attributes
change and repeating a write is harmless.
"""

import json
from decimal import Decimal
from typing import Any, Optional

import boto3
from loguru import logger

from .base import InvoiceStateStoreBase


def _to_dynamo(value: Any) -> Any:
    """
    DynamoDB rejects Python floats; round-trip through JSON to get Decimals.

    NaN and infinities have no DynamoDB number form and are stored as null.
    """
    return json.loads(json.dumps(value), parse_float=Decimal, parse_constant=lambda _: None)


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def build_update_expression(fields: dict) -> dict:
    """
    Build UpdateItem arguments that SET every field.

    Attribute names are always aliased (#k0, #k1...) so reserved words such
    as ``status`` need no special handling.
    """
    parts = []
    names = {}
    values = {}
    for index, (name, value) in enumerate(fields.items()):
        name_key = f"#k{index}"
        value_key = f":v{index}"
        names[name_key] = name
        values[value_key] = _to_dynamo(value)
        parts.append(f"{name_key} = {value_key}")

    return {
        "UpdateExpression": "SET " + ", ".join(parts),
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
    }


class DynamoInvoiceStateStore(InvoiceStateStoreBase):
    """
    Usage:
        store = DynamoInvoiceStateStore("invoice-extractions")
        store.upsert({"messageId": "m1", "attachmentKey": "attachments/m1/a1.pdf"}, {"status": "COMPLETED"})
    """

    def __init__(self, table_name: str, resource: Optional[object] = None, region: Optional[str] = None):
        """
        Args:
            table_name: DynamoDB table name (required)
            resource: boto3 DynamoDB service resource (created lazily when None)
            region: AWS region for the lazily created resource
        """
        if not table_name:
            raise ValueError("DynamoDB table name is required")
        self.table_name = table_name
        self._resource = resource
        self.region = region
        self._table = None

    @property
    def table(self):
        if self._table is None:
            if self._resource is None:
                self._resource = boto3.resource("dynamodb", region_name=self.region)
            self._table = self._resource.Table(self.table_name)
        return self._table

    def upsert(self, key: dict, fields: dict) -> None:
        if not fields:
            return
        self.table.update_item(Key=key, **build_update_expression(fields))
        logger.debug("Updated invoice state", table=self.table_name, key=key, fields=list(fields))

    def get(self, key: dict) -> Optional[dict]:
        response = self.table.get_item(Key=key)
        item = response.get("Item")
        return _from_dynamo(item) if item is not None else None
