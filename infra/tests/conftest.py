"""
Shared pytest fixtures for infrastructure tests.

Stacks are synthesized with a fixed account/region and an explicit
hosted_zone_id so no test depends on context lookups against a real account.

Example usage:

    def test_something(build_stack):
        stack = build_stack(desired_count=3)
        template = Template.from_stack(stack)
"""

from collections.abc import Callable, Iterator
from typing import Any

import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Template

from stacks.config import TopologyConfig
from stacks.topology_stack import TopologyStack

TEST_ENV = cdk.Environment(account="123456789012", region="us-east-1")
TEST_HOSTED_ZONE_ID = "Z0123456789ABCDEFGHIJ"

CONFIG_ENV_VARS = [name.upper() for name in TopologyConfig.model_fields]


def make_stack(**context: Any) -> TopologyStack:
    """Build a TopologyStack in a fresh App with the given context overrides."""
    app = cdk.App(context={"hosted_zone_id": TEST_HOSTED_ZONE_ID, **context})
    return TopologyStack(app, "Harbor", env=TEST_ENV)


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's shell environment out of config resolution."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def build_stack() -> Callable[..., TopologyStack]:
    """Factory fixture: build_stack(**context) -> TopologyStack."""
    return make_stack


@pytest.fixture(scope="session")
def template() -> Iterator[Template]:
    """
    Template of the default topology, synthesized once per session.

    Synthesis takes seconds, so read-only assertions share this one.
    """
    with pytest.MonkeyPatch.context() as mp:
        for name in CONFIG_ENV_VARS:
            mp.delenv(name, raising=False)
        synthesized = Template.from_stack(make_stack())
    yield synthesized
