"""Resource graph declaration: naming, topology and validation."""

from __future__ import annotations

import json

import pytest

from stacks.context import resolve_context
from stacks.errors import GraphConstructionError
from stacks.resource_graph import build_resource_graph


class TestNaming:
    def test_names_derived_from_context(self, resolved) -> None:
        graph = build_resource_graph(resolved)

        assert graph.stack_id == "demo-stack-prod"
        assert graph.get("resourcesTable").properties["tableName"] == "demo-prod"
        assert graph.get("lambdaRole").properties["roleName"] == "demo-lambda-role-prod"
        assert graph.get("graphqlApi").properties["name"] == "demo-prod"
        assert graph.outputs["key"]["exportName"] == "demo-key-prod"

    def test_same_context_same_graph(self, environments, globals_) -> None:
        first = build_resource_graph(resolve_context("main", environments, globals_))
        second = build_resource_graph(resolve_context("main", environments, globals_))
        assert first == second
        assert first.to_json() == second.to_json()

    def test_different_environment_different_names(self, environments, globals_) -> None:
        prod = build_resource_graph(resolve_context("main", environments, globals_))
        dev = build_resource_graph(resolve_context("develop", environments, globals_))
        assert dev.get("resourcesTable").properties["tableName"] == "demo-dev"
        assert prod.stack_id != dev.stack_id

    def test_stack_env_and_tags(self, environments, globals_) -> None:
        globals_["tags"] = {"Project": "demo", "Environment": "ignored"}
        graph = build_resource_graph(resolve_context("main", environments, globals_))

        assert graph.env == {"account": "123", "region": "us-east-1"}
        assert graph.tags == {"Project": "demo", "Environment": "prod"}

    @pytest.mark.parametrize(
        "app_name",
        ["demo app", "demo/api", "x" * 70],
    )
    def test_invalid_generated_name(self, environments, globals_, app_name) -> None:
        environments[0]["appName"] = app_name
        ctx = resolve_context("main", environments, globals_)
        with pytest.raises(GraphConstructionError):
            build_resource_graph(ctx)


class TestTopology:
    def test_declared_resources(self, resolved) -> None:
        graph = build_resource_graph(resolved)
        assert [(r.logical_id, r.type) for r in graph.resources] == [
            ("lambdaRole", "AWS::IAM::Role"),
            ("lambdaExecutionAccess", "AWS::IAM::Policy"),
            ("resourcesTable", "AWS::DynamoDB::Table"),
            ("getResources", "AWS::Lambda::Function"),
            ("graphqlApi", "AWS::AppSync::GraphQLApi"),
            ("resourcesDataSource", "AWS::AppSync::DataSource"),
            ("getResourcesResolver", "AWS::AppSync::Resolver"),
            ("addResourceResolver", "AWS::AppSync::Resolver"),
            ("deleteResourceResolver", "AWS::AppSync::Resolver"),
        ]

    def test_dependencies_declared_before_dependents(self, resolved) -> None:
        graph = build_resource_graph(resolved)
        order = [r.logical_id for r in graph.resources]
        for dependent, dependency in graph.edges:
            assert order.index(dependency) < order.index(dependent)

    def test_function_wiring(self, resolved) -> None:
        graph = build_resource_graph(resolved)
        fn = graph.get("getResources").properties

        assert fn["role"] == "lambdaRole"
        assert fn["memorySize"] == 1024
        assert fn["handler"] == "handler.handler"
        assert fn["environment"] == {"DDB_TABLE": "demo-prod"}
        assert set(graph.dependencies_of("getResources")) == {
            "lambdaRole",
            "lambdaExecutionAccess",
            "resourcesTable",
        }

    def test_operation_bindings(self, resolved) -> None:
        graph = build_resource_graph(resolved)
        bindings = {
            (r.properties["typeName"], r.properties["fieldName"]): r.properties["dataSource"]
            for r in graph.resources
            if r.type == "AWS::AppSync::Resolver"
        }
        assert bindings == {
            ("Query", "getResources"): "resourcesDataSource",
            ("Mutation", "addResource"): "resourcesDataSource",
            ("Mutation", "deleteResource"): "resourcesDataSource",
        }

    def test_table_and_index(self, resolved) -> None:
        table = build_resource_graph(resolved).get("resourcesTable").properties
        assert table["partitionKey"] == {"name": "name", "type": "S"}
        assert table["globalSecondaryIndexes"] == [
            {
                "indexName": "team-index",
                "partitionKey": {"name": "team", "type": "S"},
                "projectionType": "ALL",
            }
        ]

    def test_execution_policy_grants_log_writes(self, resolved) -> None:
        policy = build_resource_graph(resolved).get("lambdaExecutionAccess").properties
        actions = policy["statements"][0]["actions"]
        assert "logs:PutLogEvents" in actions
        assert "logs:CreateLogStream" in actions

    def test_graph_is_json_serializable(self, resolved) -> None:
        data = json.loads(build_resource_graph(resolved).to_json())
        assert data["stackId"] == "demo-stack-prod"
        assert len(data["resources"]) == 9
        assert ["getResources", "lambdaRole"] in data["edges"]

    def test_unknown_logical_id(self, resolved) -> None:
        with pytest.raises(KeyError):
            build_resource_graph(resolved).get("missing")
