"""
CDK validation aspects for pre-deployment checks.

These aspects run during `cdk synth` and add warnings to the cloud
assembly, catching issues before the orchestrator ever deploys them.

Usage:
    from stacks.validation import add_validation_aspects
    add_validation_aspects(app)
"""

import aws_cdk as cdk
import jsii
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_kinesis as kinesis
from aws_cdk import aws_rds as rds
from aws_cdk import aws_s3 as s3
from constructs import IConstruct


def _resolved_properties(node: cdk.CfnResource) -> dict:
    """
    Properties of an L1 resource resolved to plain values.

    Struct-typed L1 getters such as CfnBucket.public_access_block_configuration
    cannot be read back from values set by L2 constructs, so read the
    untyped property map instead.
    """
    return cdk.Stack.of(node).resolve(node._cfn_properties) or {}


@jsii.implements(cdk.IAspect)
class ProductionReadinessAspect:
    """
    Validates production-readiness requirements for declared resources.

    Checks:
    - ECS services run at least 2 tasks for HA
    - Aurora clusters have deletion protection enabled
    """

    def __init__(self, enforce_ha: bool = True, enforce_deletion_protection: bool = True):
        self._enforce_ha = enforce_ha
        self._enforce_deletion_protection = enforce_deletion_protection

    def visit(self, node: IConstruct) -> None:
        if self._enforce_ha and isinstance(node, ecs.CfnService):
            desired_count = node.desired_count
            if isinstance(desired_count, (int, float)) and desired_count < 2:
                cdk.Annotations.of(node).add_warning_v2(
                    "harbor:ha",
                    f"ECS service runs {desired_count:g} task(s); use at least 2 for production HA",
                )

        if self._enforce_deletion_protection and isinstance(node, rds.CfnDBCluster):
            if not node.deletion_protection:
                cdk.Annotations.of(node).add_warning_v2(
                    "harbor:deletion-protection",
                    "Aurora cluster has deletion protection disabled",
                )


@jsii.implements(cdk.IAspect)
class SecurityAspect:
    """
    Validates security requirements for declared resources.

    Checks:
    - S3 buckets block public access and are encrypted
    - Kinesis streams are encrypted at rest
    """

    def visit(self, node: IConstruct) -> None:
        if isinstance(node, s3.CfnBucket):
            properties = _resolved_properties(node)
            if properties.get("publicAccessBlockConfiguration") is None:
                cdk.Annotations.of(node).add_warning_v2(
                    "harbor:s3-public-access",
                    "S3 bucket does not block public access",
                )
            if properties.get("bucketEncryption") is None:
                cdk.Annotations.of(node).add_warning_v2(
                    "harbor:s3-encryption",
                    "S3 bucket has no default encryption",
                )

        if isinstance(node, kinesis.CfnStream):
            if _resolved_properties(node).get("streamEncryption") is None:
                cdk.Annotations.of(node).add_warning_v2(
                    "harbor:kinesis-encryption",
                    "Kinesis stream is not encrypted at rest",
                )


def add_validation_aspects(
    scope: cdk.App,
    enforce_ha: bool = True,
    enforce_deletion_protection: bool = True,
    enable_security_checks: bool = True,
) -> None:
    """
    Add validation aspects to all stacks in the CDK app.

    Args:
        scope: The CDK App to add aspects to
        enforce_ha: Whether to check for high-availability configurations
        enforce_deletion_protection: Whether to check for deletion protection
        enable_security_checks: Whether to run security-related validations
    """
    cdk.Aspects.of(scope).add(
        ProductionReadinessAspect(
            enforce_ha=enforce_ha,
            enforce_deletion_protection=enforce_deletion_protection,
        )
    )

    if enable_security_checks:
        cdk.Aspects.of(scope).add(SecurityAspect())
