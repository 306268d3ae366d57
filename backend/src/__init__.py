"""
SpecQA behavior verification engine.

Parses natural-language behavior specifications, resolves behavior
dependencies and verifies each behavior against a running web application
through an injected instruction-following agent.
"""

__version__ = "1.0.0"

from specqa.dsl.models import Behavior, Scenario, SpecStep, TestableSpec
from specqa.dsl.parser import SpecParseError, parse_behaviors, parse_file, parse_spec

__all__ = [
    "Behavior",
    "Scenario",
    "SpecParseError",
    "SpecStep",
    "TestableSpec",
    "__version__",
    "parse_behaviors",
    "parse_file",
    "parse_spec",
]
