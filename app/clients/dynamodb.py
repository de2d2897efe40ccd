"""
Utility wrapper for storing OAuth credential and state records in DynamoDB.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import boto3
from boto3.dynamodb.conditions import Attr

from app.core.config import StorageSettings


class DynamoDBClient:
    """Key-value operations over a table keyed by (pk, sk)."""

    def __init__(self, settings: StorageSettings) -> None:
        if not settings.dynamodb_table_name:
            raise ValueError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
        self._settings = settings
        self._resource = boto3.resource("dynamodb", region_name=settings.region_name)
        self._table = self._resource.Table(settings.dynamodb_table_name)

    def put_item(self, item: Dict[str, Any]) -> None:
        """Put an item in the DynamoDB table."""
        self._table.put_item(Item=item)

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        """Retrieve an item using its key."""
        response = self._table.get_item(Key={"pk": partition_key, "sk": sort_key})
        return response.get("Item")

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        self._table.delete_item(Key={"pk": partition_key, "sk": sort_key})

    def scan_partition_prefix(self, partition_prefix: str) -> list[Dict[str, Any]]:
        """Scan the table for items whose partition key has the given prefix."""
        items: list[Dict[str, Any]] = []
        kwargs: Dict[str, Any] = {
            "FilterExpression": Attr("pk").begins_with(partition_prefix)
        }
        while True:
            response = self._table.scan(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key


__all__ = ["DynamoDBClient"]
