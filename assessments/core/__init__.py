"""
Core module for configuration, errors, logging and the test-type registry.

Note: modules that depend on ``assessments.schemas`` (test_types,
validators users) are not imported at package level to avoid circular
imports. Import them directly: from assessments.core.test_types import ...
"""
from .config import settings

__all__ = ["settings"]
