#!/usr/bin/env python3
"""
AWS CDK app entry point for Harbor infrastructure.

Every TopologyConfig setting can be overridden with CDK context or an
environment variable:

    cdk deploy -c container_image=registry.example.com/web:1.4.2
    DESIRED_COUNT=3 cdk deploy
"""

import os

import aws_cdk as cdk

from stacks.logging import configure_logging
from stacks.topology_stack import TopologyStack
from stacks.validation import add_validation_aspects

DEFAULT_REGION = "us-east-1"


def resolve_environment(app: cdk.App) -> cdk.Environment:
    """Account and region from context, else the CLI defaults (lookups need both)."""
    return cdk.Environment(
        account=app.node.try_get_context("account") or os.environ.get("CDK_DEFAULT_ACCOUNT"),
        region=(
            app.node.try_get_context("region")
            or os.environ.get("CDK_DEFAULT_REGION")
            or DEFAULT_REGION
        ),
    )


def build_app(app: cdk.App) -> TopologyStack:
    """Declare the topology in the app, tagged and with validation aspects."""
    topology = TopologyStack(
        app,
        "Harbor",
        env=resolve_environment(app),
        description="Harbor topology: network, API, database, identity, CDN, analytics",
    )

    cdk.Tags.of(app).add("Project", topology.config.resource_prefix)

    add_validation_aspects(app)

    return topology


if __name__ == "__main__":
    configure_logging(
        json_format=os.environ.get("LOG_FORMAT", "json") == "json",
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )

    app = cdk.App()
    build_app(app)
    app.synth()
