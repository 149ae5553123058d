"""CDK Stacks for Harbor infrastructure."""

from .config import ConfigurationError, TopologyConfig
from .topology_stack import TopologyStack

__all__ = [
    "ConfigurationError",
    "TopologyConfig",
    "TopologyStack",
]
