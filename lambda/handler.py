"""AWS Lambda handler behind the AppSync `resourcesDataSource`.

AppSync direct Lambda resolvers send one event per field:

    {"info": {"parentTypeName": "Query", "fieldName": "getResources"},
     "arguments": {"team": "platform"}}

The table name comes from DDB_TABLE, injected by the CDK stack.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable

import boto3
from boto3.dynamodb.conditions import Key

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TEAM_INDEX = "team-index"

_table = None


def _get_table():
    """Return the DynamoDB Table resource, created on first use."""
    global _table
    if _table is None:
        table_name = os.environ.get("DDB_TABLE")
        if not table_name:
            raise RuntimeError("DDB_TABLE not configured")
        _table = boto3.resource("dynamodb").Table(table_name)
    return _table


def _get_resources(arguments: dict[str, Any]) -> list[dict[str, Any]]:
    table = _get_table()
    team = arguments.get("team")
    if team:
        response = table.query(
            IndexName=TEAM_INDEX,
            KeyConditionExpression=Key("team").eq(team),
        )
        return response.get("Items", [])

    items: list[dict[str, Any]] = []
    kwargs: dict[str, Any] = {}
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        if "LastEvaluatedKey" not in response:
            return items
        kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]


def _add_resource(arguments: dict[str, Any]) -> dict[str, Any]:
    item = dict(arguments.get("input") or {})
    if not item.get("name"):
        raise ValueError("Missing required parameter: input.name")
    _get_table().put_item(Item=item)
    return item


def _delete_resource(arguments: dict[str, Any]) -> dict[str, Any] | None:
    name = arguments.get("name")
    if not name:
        raise ValueError("Missing required parameter: name")
    response = _get_table().delete_item(Key={"name": name}, ReturnValues="ALL_OLD")
    return response.get("Attributes")


FIELD_HANDLERS: dict[str, Callable[[dict[str, Any]], Any]] = {
    "getResources": _get_resources,
    "addResource": _add_resource,
    "deleteResource": _delete_resource,
}


def handler(event: dict[str, Any], context: Any) -> Any:
    """Lambda entry point. Routes on event.info.fieldName.

    Errors propagate so AppSync reports them in the GraphQL `errors` list.
    """
    field_name = (event.get("info") or {}).get("fieldName")
    logger.info("Resolving field: %s", field_name)

    field_handler = FIELD_HANDLERS.get(field_name)
    if field_handler is None:
        raise ValueError(f"Unknown field: {field_name}")
    return field_handler(event.get("arguments") or {})
