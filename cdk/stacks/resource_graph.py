"""Serializable description of the resources declared for one environment.

`build_resource_graph` is a pure function of a ResolvedContext: the same
context always yields the same descriptors, names and edges, so the graph
can be compared by snapshot. The CDK stack consumes it to create constructs;
CloudFormation does the diff/apply against live infrastructure.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from stacks.context import ResolvedContext
from stacks.errors import GraphConstructionError

LAMBDA_RUNTIME = "python3.12"
LAMBDA_HANDLER = "handler.handler"
TABLE_ENV_VAR = "DDB_TABLE"
PARTITION_KEY = "name"
INDEX_NAME = "team-index"
INDEX_KEY = "team"
EXECUTION_POLICY_NAME = "lambdaExecutionAccess"
READ_ONLY_MANAGED_POLICY = "ReadOnlyAccess"
LOG_ACTIONS = (
    "logs:CreateLogGroup",
    "logs:CreateLogStream",
    "logs:DescribeLogGroups",
    "logs:DescribeLogStreams",
    "logs:PutLogEvents",
)

# (logical id, GraphQL type, field)
RESOLVERS = (
    ("getResourcesResolver", "Query", "getResources"),
    ("addResourceResolver", "Mutation", "addResource"),
    ("deleteResourceResolver", "Mutation", "deleteResource"),
)

_NAME_RULES = {
    "stack id": re.compile(r"^[A-Za-z][A-Za-z0-9-]{0,127}$"),
    "API name": re.compile(r"^[A-Za-z0-9_-]{1,65536}$"),
    "role name": re.compile(r"^[\w+=,.@-]{1,64}$"),
    "table name": re.compile(r"^[A-Za-z0-9_.-]{3,255}$"),
    "export name": re.compile(r"^[A-Za-z0-9:-]{1,255}$"),
}


@dataclass(frozen=True)
class ResourceDescriptor:
    logical_id: str
    type: str
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"logicalId": self.logical_id, "type": self.type, "properties": self.properties}


@dataclass(frozen=True)
class ResourceGraph:
    """Descriptors in dependency order plus (dependent, dependency) edges."""

    stack_id: str
    env: dict[str, str]
    tags: dict[str, str]
    resources: tuple[ResourceDescriptor, ...]
    edges: tuple[tuple[str, str], ...]
    outputs: dict[str, dict[str, str]]

    def get(self, logical_id: str) -> ResourceDescriptor:
        for resource in self.resources:
            if resource.logical_id == logical_id:
                return resource
        raise KeyError(logical_id)

    def dependencies_of(self, logical_id: str) -> list[str]:
        return [dep for src, dep in self.edges if src == logical_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stackId": self.stack_id,
            "env": self.env,
            "tags": self.tags,
            "resources": [r.to_dict() for r in self.resources],
            "edges": [list(edge) for edge in self.edges],
            "outputs": self.outputs,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=2)


def stack_id(context: ResolvedContext) -> str:
    return f"{context.app_name}-stack-{context.environment}"


def api_name(context: ResolvedContext) -> str:
    return f"{context.app_name}-{context.environment}"


def role_name(context: ResolvedContext) -> str:
    return f"{context.app_name}-lambda-role-{context.environment}"


def table_name(context: ResolvedContext) -> str:
    return f"{context.app_name}-{context.environment}"


def key_export_name(context: ResolvedContext) -> str:
    return f"{context.app_name}-key-{context.environment}"


def _check_name(kind: str, value: str) -> None:
    if not _NAME_RULES[kind].match(value):
        raise GraphConstructionError(f"Generated {kind} {value!r} is not a valid AWS name")


def _check_graph(resources: list[ResourceDescriptor], edges: list[tuple[str, str]]) -> None:
    seen: set[str] = set()
    for resource in resources:
        if resource.logical_id in seen:
            raise GraphConstructionError(f"Duplicate logical id: {resource.logical_id}")
        seen.add(resource.logical_id)

    # Leaves first: a dependency must already be declared when its dependent is.
    position = {r.logical_id: i for i, r in enumerate(resources)}
    for src, dep in edges:
        for end in (src, dep):
            if end not in position:
                raise GraphConstructionError(f"Edge {src} -> {dep} references unknown resource {end}")
        if position[dep] >= position[src]:
            raise GraphConstructionError(f"{src} is declared before its dependency {dep}")


def build_resource_graph(context: ResolvedContext) -> ResourceGraph:
    """Declare the API, function, role, table and resolvers for `context`."""
    names = {
        "stack id": stack_id(context),
        "API name": api_name(context),
        "role name": role_name(context),
        "table name": table_name(context),
        "export name": key_export_name(context),
    }
    for kind, value in names.items():
        _check_name(kind, value)

    resources = [
        ResourceDescriptor(
            "lambdaRole",
            "AWS::IAM::Role",
            {
                "roleName": names["role name"],
                "description": f"Lambda role for {context.app_name}",
                "assumedBy": "lambda.amazonaws.com",
                "managedPolicies": [READ_ONLY_MANAGED_POLICY],
            },
        ),
        ResourceDescriptor(
            "lambdaExecutionAccess",
            "AWS::IAM::Policy",
            {
                "policyName": EXECUTION_POLICY_NAME,
                "statements": [
                    {"effect": "Allow", "actions": list(LOG_ACTIONS), "resources": ["*"]},
                ],
                "roles": ["lambdaRole"],
            },
        ),
        ResourceDescriptor(
            "resourcesTable",
            "AWS::DynamoDB::Table",
            {
                "tableName": names["table name"],
                "billingMode": "PAY_PER_REQUEST",
                "partitionKey": {"name": PARTITION_KEY, "type": "S"},
                "globalSecondaryIndexes": [
                    {
                        "indexName": INDEX_NAME,
                        "partitionKey": {"name": INDEX_KEY, "type": "S"},
                        "projectionType": "ALL",
                    }
                ],
                "grants": {"lambdaRole": "readWriteData", "resourcesDataSource": "fullAccess"},
            },
        ),
        ResourceDescriptor(
            "getResources",
            "AWS::Lambda::Function",
            {
                "runtime": LAMBDA_RUNTIME,
                "handler": LAMBDA_HANDLER,
                "memorySize": context.lambda_memory_mb,
                "role": "lambdaRole",
                "environment": {TABLE_ENV_VAR: names["table name"]},
            },
        ),
        ResourceDescriptor(
            "graphqlApi",
            "AWS::AppSync::GraphQLApi",
            {
                "name": names["API name"],
                "authorizationType": "API_KEY",
                "schema": "schemas/schema.graphql",
            },
        ),
        ResourceDescriptor(
            "resourcesDataSource",
            "AWS::AppSync::DataSource",
            {"type": "AWS_LAMBDA", "api": "graphqlApi", "function": "getResources"},
        ),
    ]
    resources.extend(
        ResourceDescriptor(
            logical_id,
            "AWS::AppSync::Resolver",
            {"typeName": type_name, "fieldName": field_name, "dataSource": "resourcesDataSource"},
        )
        for logical_id, type_name, field_name in RESOLVERS
    )

    edges = [
        ("lambdaExecutionAccess", "lambdaRole"),
        ("getResources", "lambdaRole"),
        ("getResources", "lambdaExecutionAccess"),
        ("getResources", "resourcesTable"),
        ("resourcesDataSource", "graphqlApi"),
        ("resourcesDataSource", "getResources"),
        ("resourcesDataSource", "resourcesTable"),
    ]
    edges.extend((logical_id, "resourcesDataSource") for logical_id, _, _ in RESOLVERS)

    _check_graph(resources, edges)

    return ResourceGraph(
        stack_id=names["stack id"],
        env={"account": context.account_number, "region": context.region},
        tags={**context.extra_tags, "Environment": context.environment},
        resources=tuple(resources),
        edges=tuple(edges),
        outputs={"key": {"source": "graphqlApi.apiKey", "exportName": names["export name"]}},
    )
