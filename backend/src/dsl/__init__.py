"""
DSL module for markdown behavior specifications.

Provides the behavior/scenario/step models, Check classification, the
instruction intent table, parsing and catalog validation.
No AI/LLM dependency - everything here is deterministic.
"""

from specqa.dsl.classify import DeterministicCheck, classify_check, match_deterministic
from specqa.dsl.models import (
    Behavior,
    BehaviorCatalog,
    BehaviorDependency,
    CheckType,
    Scenario,
    SpecStep,
    StepKind,
    TestableSpec,
)
from specqa.dsl.parser import SpecParseError, SpecParser, parse_behaviors, slugify
from specqa.dsl.validator import CatalogValidationError, CatalogValidator, find_cycles

__all__ = [
    # Models
    "Behavior",
    "BehaviorCatalog",
    "BehaviorDependency",
    "CheckType",
    "Scenario",
    "SpecStep",
    "StepKind",
    "TestableSpec",
    # Classification
    "DeterministicCheck",
    "classify_check",
    "match_deterministic",
    # Parser & Validator
    "CatalogValidationError",
    "CatalogValidator",
    "SpecParseError",
    "SpecParser",
    "find_cycles",
    "parse_behaviors",
    "slugify",
]
