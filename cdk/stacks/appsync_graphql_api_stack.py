"""AppSyncGraphQLAPIStack: AppSync API + Lambda data source + DynamoDB table.

Architecture:
  - AppSync GraphQL API, API-key auth, schema from cdk/schemas/schema.graphql.
  - One Lambda function backs all three operations through a single
    Lambda data source (getResources, addResource, deleteResource).
  - Lambda runs under a named role: ReadOnlyAccess + inline log-write policy
    + read/write on the table.
  - DynamoDB table keyed on `name` with a `team-index` GSI.

Names and settings come from a ResourceGraph; this stack only turns
descriptors into constructs.
"""

from __future__ import annotations

import os

import aws_cdk as cdk
from aws_cdk import (
    Stack,
    aws_appsync as appsync,
    aws_dynamodb as dynamodb,
    aws_iam as iam,
    aws_lambda as lambda_,
)
from constructs import Construct

from stacks.resource_graph import RESOLVERS, ResourceGraph

_CDK_DIR = os.path.dirname(os.path.dirname(__file__))
_PROJECT_ROOT = os.path.dirname(_CDK_DIR)

_RUNTIMES = {
    "python3.11": lambda_.Runtime.PYTHON_3_11,
    "python3.12": lambda_.Runtime.PYTHON_3_12,
}
_ATTRIBUTE_TYPES = {
    "S": dynamodb.AttributeType.STRING,
    "N": dynamodb.AttributeType.NUMBER,
    "B": dynamodb.AttributeType.BINARY,
}


def _attribute(attr: dict) -> dynamodb.Attribute:
    return dynamodb.Attribute(name=attr["name"], type=_ATTRIBUTE_TYPES[attr["type"]])


class AppSyncGraphQLAPIStack(Stack):
    """Provisions the resources GraphQL API described by `graph`."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        graph: ResourceGraph,
        schema_path: str | None = None,
        lambda_code_dir: str | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # --- IAM role for the resources function ---
        role_props = graph.get("lambdaRole").properties
        self.lambda_role = iam.Role(
            self,
            "lambdaRole",
            role_name=role_props["roleName"],
            description=role_props["description"],
            assumed_by=iam.ServicePrincipal(role_props["assumedBy"]),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(name)
                for name in role_props["managedPolicies"]
            ],
        )

        policy_props = graph.get("lambdaExecutionAccess").properties
        self.execution_policy = iam.Policy(
            self,
            "lambdaExecutionAccess",
            policy_name=policy_props["policyName"],
            statements=[
                iam.PolicyStatement(
                    effect=iam.Effect[stmt["effect"].upper()],
                    actions=stmt["actions"],
                    resources=stmt["resources"],
                )
                for stmt in policy_props["statements"]
            ],
        )
        self.lambda_role.attach_inline_policy(self.execution_policy)

        # --- DynamoDB table ---
        table_props = graph.get("resourcesTable").properties
        self.table = dynamodb.Table(
            self,
            "resourcesTable",
            table_name=table_props["tableName"],
            billing_mode=dynamodb.BillingMode[table_props["billingMode"]],
            partition_key=_attribute(table_props["partitionKey"]),
        )
        for index in table_props["globalSecondaryIndexes"]:
            self.table.add_global_secondary_index(
                index_name=index["indexName"],
                partition_key=_attribute(index["partitionKey"]),
                projection_type=dynamodb.ProjectionType[index["projectionType"]],
            )

        # --- Lambda function ---
        fn_props = graph.get("getResources").properties
        self.lambda_function = lambda_.Function(
            self,
            "getResources",
            runtime=_RUNTIMES[fn_props["runtime"]],
            handler=fn_props["handler"],
            code=lambda_.Code.from_asset(
                lambda_code_dir or os.path.join(_PROJECT_ROOT, "lambda"),
                exclude=["*.pyc", "__pycache__"],
            ),
            memory_size=fn_props["memorySize"],
            role=self.lambda_role,
            environment=dict(fn_props["environment"]),
        )

        # --- AppSync GraphQL API ---
        api_props = graph.get("graphqlApi").properties
        self.graphql_api = appsync.GraphqlApi(
            self,
            "graphqlApi",
            name=api_props["name"],
            definition=appsync.Definition.from_file(
                schema_path or os.path.join(_CDK_DIR, api_props["schema"])
            ),
            authorization_config=appsync.AuthorizationConfig(
                default_authorization=appsync.AuthorizationMode(
                    authorization_type=appsync.AuthorizationType[api_props["authorizationType"]],
                ),
            ),
        )

        # --- Data source + resolvers ---
        self.data_source = self.graphql_api.add_lambda_data_source(
            "resourcesDataSource", self.lambda_function
        )
        for logical_id, _, _ in RESOLVERS:
            resolver_props = graph.get(logical_id).properties
            self.data_source.create_resolver(
                logical_id,
                type_name=resolver_props["typeName"],
                field_name=resolver_props["fieldName"],
            )

        grantees = {"lambdaRole": self.lambda_role, "resourcesDataSource": self.data_source}
        for grantee, access in table_props["grants"].items():
            if access == "fullAccess":
                self.table.grant_full_access(grantees[grantee])
            else:
                self.table.grant_read_write_data(grantees[grantee])

        # Log-write permissions must exist before the function first runs.
        self.lambda_function.node.add_dependency(self.execution_policy)

        # --- Outputs ---
        key_output = graph.outputs["key"]
        cdk.CfnOutput(
            self,
            "key",
            value=self.graphql_api.api_key or "",
            export_name=key_output["exportName"],
            description="AppSync API key",
        )
