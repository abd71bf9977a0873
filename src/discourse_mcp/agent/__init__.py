"""Forum session agent: operation registry, parameter schemas and handlers."""

from .agent import REGISTRY, ForumAgentService
from .operations import Operation, OperationRegistry

__all__ = [
    "REGISTRY",
    "ForumAgentService",
    "Operation",
    "OperationRegistry",
]
