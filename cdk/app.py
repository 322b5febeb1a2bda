#!/usr/bin/env python3
"""CDK app entry point for the resources GraphQL API.

Picks the environment whose branchName matches the current git branch,
merges it over `globals`, and synthesizes one stack for it. Any
configuration failure exits non-zero before a stack is created.
"""

import logging
import os
import sys

import aws_cdk as cdk

from stacks.appsync_graphql_api_stack import AppSyncGraphQLAPIStack
from stacks.context import get_current_branch, load_context_config, resolve_context
from stacks.errors import AppConfigError
from stacks.resource_graph import build_resource_graph

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("app")

app = cdk.App()

config_file = app.node.try_get_context("configFile") or os.environ.get("APP_CONFIG_FILE")

try:
    if config_file:
        environments, globals_ = load_context_config(config_file)
    else:
        environments = app.node.try_get_context("environments")
        globals_ = app.node.try_get_context("globals") or {}

    branch = (
        app.node.try_get_context("branch")
        or os.environ.get("BRANCH_NAME")
        or get_current_branch(os.path.dirname(os.path.abspath(__file__)))
    )
    context = resolve_context(branch, environments, globals_)
    graph = build_resource_graph(context)
except AppConfigError as e:
    logger.error("%s: %s", type(e).__name__, e)
    sys.exit(1)

AppSyncGraphQLAPIStack(
    app,
    graph.stack_id,
    graph=graph,
    env=cdk.Environment(account=graph.env["account"], region=graph.env["region"]),
    tags=graph.tags,
)

app.synth()
