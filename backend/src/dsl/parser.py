"""
Markdown parser for behavior specifications.

Handles three document shapes:

- ``## Behaviors`` with ``### <Title>`` behaviors, numbered ``#### Dependencies``,
  ``#### Steps`` or nested ``#### Scenarios`` / ``##### <name>`` / ``###### Steps``
- ``## Scenarios`` (or ``## Examples``) with ``### <name>`` and ``#### Steps``
- anything else, treated as a single "Default" scenario of every step line

An optional ``## Pages`` section maps behaviors to the route they start on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import structlog
from pydantic import ValidationError

from specqa.dsl.models import (
    Behavior,
    BehaviorDependency,
    Scenario,
    SpecStep,
    TestableSpec,
)
from specqa.dsl.validator import CatalogValidationError, CatalogValidator

logger = structlog.get_logger(__name__)

STEP_PATTERN = re.compile(r"^\s*\*\s*(Act|Check):\s*(.+)$")
NAME_PATTERN = re.compile(r"^#\s+(.+)$", re.M)
DIRECTORY_PATTERN = re.compile(r"^Directory:\s*`([^`]+)`", re.M)
DEPENDENCY_PATTERN = re.compile(r"^\d+\.\s+(.+)$")
PATH_PATTERN = re.compile(r"\*\*Path:\*\*\s*`([^`]+)`")
STEPS_HEADING = re.compile(r"^#### Steps\s*(?:\(([^)]+)\))?", re.I)

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_H2_RE = re.compile(r"^## [^#]", re.M)

DEFAULT_SCENARIO_NAME = "Default"


class SpecParseError(Exception):
    """Raised when a specification document cannot be parsed."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        location = f" at line {line}" if line is not None else ""
        super().__init__(f"{message}{location}")


def slugify(text: str) -> str:
    """Lower-case, collapse non-alphanumeric runs to '-', trim edge hyphens."""
    return _SLUG_RE.sub("-", text.lower()).strip("-")


@dataclass
class _Section:
    lines: list[str]
    line_offset: int


def _extract_section(content: str, heading: re.Pattern[str]) -> _Section | None:
    """Return the body of an H2 section up to the next H2."""
    match = heading.search(content)
    if not match:
        return None
    start = match.end()
    next_h2 = _H2_RE.search(content, start)
    end = next_h2.start() if next_h2 else len(content)
    body = content[start:end]
    return _Section(lines=body.split("\n"), line_offset=content[:start].count("\n"))


def _parse_step_line(line: str, line_number: int) -> SpecStep | None:
    match = STEP_PATTERN.match(line)
    if not match:
        return None
    kind, instruction = match.group(1), match.group(2).strip()
    if kind == "Act":
        return SpecStep.act(instruction, line_number)
    return SpecStep.check(instruction, line_number)


def parse_steps(content: str) -> list[SpecStep]:
    """Parse every Act/Check line of a document, with 1-based line numbers."""
    steps = []
    for index, line in enumerate(content.replace("\r\n", "\n").split("\n")):
        step = _parse_step_line(line, index + 1)
        if step is not None:
            steps.append(step)
    return steps


def parse_page_paths(content: str) -> dict[str, str]:
    """Map behavior ids to the page path declared in the ``## Pages`` section."""
    page_paths: dict[str, str] = {}
    section = _extract_section(content, re.compile(r"^## Pages\s*$", re.M | re.I))
    if section is None:
        return page_paths

    current_path: str | None = None
    in_behaviors = False

    for raw in section.lines:
        line = raw.strip()
        if line.startswith("### ") and not line.startswith("#### "):
            current_path = None
            in_behaviors = False
            continue

        path_match = PATH_PATTERN.search(line)
        if path_match:
            current_path = path_match.group(1)
            continue

        if line.lower() == "#### behaviors":
            in_behaviors = True
            continue

        if line.startswith("#### "):
            in_behaviors = False
            continue

        if in_behaviors and current_path and line.startswith("- "):
            page_paths[slugify(line[2:].strip())] = current_path

    return page_paths


class _Mode(StrEnum):
    IDLE = "idle"
    DEPENDENCIES = "dependencies"
    STEPS = "steps"


@dataclass
class _ScenarioDraft:
    name: str
    steps: list[SpecStep] = field(default_factory=list)


@dataclass
class _BehaviorDraft:
    title: str
    line: int
    description: str = ""
    dependencies: list[BehaviorDependency] = field(default_factory=list)
    scenarios: list[Scenario] = field(default_factory=list)

    def flush(self, draft: _ScenarioDraft | None) -> None:
        if draft is not None and draft.steps:
            self.scenarios.append(Scenario(name=draft.name, steps=tuple(draft.steps)))


class SpecParser:
    """Parses markdown specification documents into behaviors and scenarios."""

    def __init__(self, validate: bool = True) -> None:
        self._validate = validate
        self._validator = CatalogValidator()
        self._log = logger.bind(component="spec_parser")

    def parse_file(self, path: Path | str) -> TestableSpec:
        """Parse a specification file."""
        path = Path(path)
        if not path.exists():
            raise SpecParseError(f"File not found: {path}")
        return self.parse_string(path.read_text(encoding="utf-8"))

    def parse_string(self, content: str) -> TestableSpec:
        """Parse a specification document."""
        content = content.replace("\r\n", "\n")

        name_match = NAME_PATTERN.search(content)
        name = name_match.group(1).strip() if name_match else "Unnamed"
        dir_match = DIRECTORY_PATTERN.search(content)
        directory = dir_match.group(1).strip() if dir_match else None

        behaviors = self.parse_behaviors(content)
        scenarios = self.parse_scenarios(content, behaviors)

        self._log.debug(
            "Parsed specification",
            name=name,
            behaviors=len(behaviors),
            scenarios=len(scenarios),
        )
        return TestableSpec(
            name=name,
            directory=directory,
            scenarios=tuple(scenarios),
            behaviors=behaviors,
        )

    def parse_scenarios(
        self,
        content: str,
        behaviors: dict[str, Behavior] | None = None,
    ) -> list[Scenario]:
        """Collect the runnable scenarios of a document."""
        section = _extract_section(content, re.compile(r"^## (?:Scenarios|Examples)\s*$", re.M))
        if section is not None:
            return self._parse_scenario_section(section)

        if behaviors is None:
            behaviors = self.parse_behaviors(content)
        if behaviors:
            return [s for b in behaviors.values() for s in b.scenarios]

        steps = parse_steps(content)
        if steps:
            return [Scenario(name=DEFAULT_SCENARIO_NAME, steps=tuple(steps))]
        return []

    def parse_behaviors(self, content: str) -> dict[str, Behavior]:
        """
        Parse the ``## Behaviors`` section into a catalog keyed by behavior id.

        Raises:
            SpecParseError: On malformed behaviors, or when validation is enabled
                and a dependency references a behavior that does not exist.
        """
        content = content.replace("\r\n", "\n")
        section = _extract_section(content, re.compile(r"^## Behaviors\s*$", re.M | re.I))
        if section is None:
            return {}

        page_paths = parse_page_paths(content)
        drafts: list[_BehaviorDraft] = []
        current: _BehaviorDraft | None = None
        scenario: _ScenarioDraft | None = None
        mode = _Mode.IDLE
        in_scenarios = False

        for index, raw in enumerate(section.lines):
            line = raw.strip()
            line_number = section.line_offset + index + 1

            if line.startswith("### ") and not line.startswith("#### "):
                if current is not None:
                    current.flush(scenario)
                current = _BehaviorDraft(title=line[4:].strip(), line=line_number)
                drafts.append(current)
                scenario = None
                mode = _Mode.IDLE
                in_scenarios = False
                continue

            if current is None:
                continue

            if line.startswith("#### ") and not line.startswith("#####"):
                if re.match(r"^#### Dependencies", line, re.I):
                    mode = _Mode.DEPENDENCIES
                    in_scenarios = False
                elif steps_match := STEPS_HEADING.match(line):
                    current.flush(scenario)
                    scenario_name = (steps_match.group(1) or "").strip() or current.title
                    scenario = _ScenarioDraft(name=scenario_name)
                    mode = _Mode.STEPS
                    in_scenarios = False
                elif re.match(r"^#### (?:Scenarios|Examples)", line, re.I):
                    mode = _Mode.IDLE
                    in_scenarios = True
                else:
                    current.flush(scenario)
                    scenario = None
                    mode = _Mode.IDLE
                    in_scenarios = False
                continue

            if in_scenarios and line.startswith("##### ") and not line.startswith("######"):
                current.flush(scenario)
                scenario = _ScenarioDraft(name=line[6:].strip())
                mode = _Mode.IDLE
                continue

            if re.match(r"^###### Steps", line, re.I):
                mode = _Mode.STEPS
                continue

            if mode == _Mode.DEPENDENCIES and line:
                dependency = self._parse_dependency(line)
                if dependency is not None:
                    current.dependencies.append(dependency)
                    continue

            if mode == _Mode.STEPS and scenario is not None and line.startswith("* "):
                step = _parse_step_line(line, line_number)
                if step is not None:
                    scenario.steps.append(step)
                continue

            if (
                mode == _Mode.IDLE
                and not in_scenarios
                and line
                and not line.startswith("#")
                and not current.description
            ):
                current.description = line

        if current is not None:
            current.flush(scenario)

        catalog: dict[str, Behavior] = {}
        for draft in drafts:
            behavior_id = slugify(draft.title)
            if not behavior_id:
                raise SpecParseError(f"Behavior title {draft.title!r} has no usable id", draft.line)
            try:
                catalog[behavior_id] = Behavior(
                    id=behavior_id,
                    title=draft.title,
                    description=draft.description,
                    dependencies=tuple(draft.dependencies),
                    scenarios=tuple(draft.scenarios),
                    page_path=page_paths.get(behavior_id),
                )
            except ValidationError as e:
                raise SpecParseError(
                    f"Invalid behavior {draft.title!r}: {e.errors()[0]['msg']}", draft.line
                ) from e

        if self._validate:
            try:
                self._validator.validate_or_raise(catalog)
            except CatalogValidationError as e:
                raise SpecParseError(str(e)) from e

        return catalog

    @staticmethod
    def _parse_dependency(line: str) -> BehaviorDependency | None:
        """Parse ``N. Title`` or ``N. Title: scenario name``."""
        match = DEPENDENCY_PATTERN.match(line)
        if not match:
            return None
        text = match.group(1).strip()
        title, sep, scenario_name = text.partition(":")
        if sep:
            return BehaviorDependency(
                behavior_id=slugify(title.strip()),
                scenario_name=scenario_name.strip() or None,
            )
        return BehaviorDependency(behavior_id=slugify(text))

    @staticmethod
    def _parse_scenario_section(section: _Section) -> list[Scenario]:
        scenarios: list[Scenario] = []
        current: _ScenarioDraft | None = None
        in_steps = False

        def flush() -> None:
            if current is not None and current.steps:
                scenarios.append(Scenario(name=current.name, steps=tuple(current.steps)))

        for index, raw in enumerate(section.lines):
            line = raw.strip()
            line_number = section.line_offset + index + 1

            if line.startswith("### "):
                flush()
                current = _ScenarioDraft(name=line[4:].strip())
                in_steps = False
                continue

            if line.lower() == "#### steps":
                in_steps = True
                continue

            if line.startswith("#### ") and "steps" not in line.lower():
                in_steps = False
                continue

            if in_steps and current is not None and line.startswith("* "):
                step = _parse_step_line(line, line_number)
                if step is not None:
                    current.steps.append(step)

        flush()
        return scenarios


def parse_behaviors(content: str, validate: bool = True) -> dict[str, Behavior]:
    """Parse a behavior catalog from document content."""
    return SpecParser(validate=validate).parse_behaviors(content)


def parse_file(path: Path | str) -> TestableSpec:
    return SpecParser().parse_file(path)


def parse_spec(content: str) -> TestableSpec:
    """Parse a full specification document: behaviors plus example scenarios."""
    return SpecParser().parse_string(content)
