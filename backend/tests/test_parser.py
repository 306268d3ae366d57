"""
Unit tests for the behavior document parser.

Tests cover:
- Behavior catalog parsing (steps, dependencies, nested scenarios, page paths)
- Example/scenario section parsing and the Default fallback
- Step classification and line numbers
- Error reporting for unresolved dependencies
"""

from __future__ import annotations

from pathlib import Path

import pytest

from specqa.dsl.models import CheckType, StepKind
from specqa.dsl.parser import (
    DEFAULT_SCENARIO_NAME,
    SpecParseError,
    SpecParser,
    parse_behaviors,
    parse_file,
    parse_spec,
    parse_page_paths,
    parse_steps,
    slugify,
)


class TestSlugify:
    """Tests for behavior id derivation."""

    def test_lowercases_and_hyphenates(self) -> None:
        """Test titles become lower-case hyphenated ids."""
        assert slugify("Sign Up") == "sign-up"
        assert slugify("Invalid Sign In") == "invalid-sign-in"

    def test_collapses_punctuation_and_trims(self) -> None:
        """Test runs of non-alphanumerics collapse and edge hyphens are trimmed."""
        assert slugify("  Edit / Delete Task!  ") == "edit-delete-task"


class TestParseSteps:
    """Tests for raw step line parsing."""

    def test_act_and_check_lines(self) -> None:
        """Test Act and Check lines are recognized with 1-based line numbers."""
        content = "intro\n* Act: Click the button\n* Check: URL contains /done\n"
        steps = parse_steps(content)

        assert len(steps) == 2
        assert steps[0].kind == StepKind.ACT
        assert steps[0].line_number == 2
        assert steps[1].kind == StepKind.CHECK
        assert steps[1].check_type == CheckType.DETERMINISTIC
        assert steps[1].line_number == 3

    def test_semantic_check_classification(self) -> None:
        """Test free-form checks are classified as semantic."""
        steps = parse_steps("* Check: The task list shows one item")
        assert steps[0].check_type == CheckType.SEMANTIC

    def test_non_step_lines_ignored(self) -> None:
        """Test bullets without an Act/Check prefix are skipped."""
        assert parse_steps("* Note: nothing here\n- Act: wrong bullet") == []


class TestParseBehaviors:
    """Tests for the behavior catalog."""

    def test_catalog_keys_and_titles(self, sample_behaviors_doc: str) -> None:
        """Test every behavior is keyed by its slugified title."""
        catalog = parse_behaviors(sample_behaviors_doc)

        assert list(catalog) == ["sign-up", "sign-in", "create-task", "edit-task"]
        assert catalog["sign-up"].title == "Sign Up"
        assert catalog["sign-up"].description == "New users can register."

    def test_single_steps_block_named_after_behavior(self, sample_behaviors_doc: str) -> None:
        """Test a plain Steps block becomes one scenario named after the behavior."""
        catalog = parse_behaviors(sample_behaviors_doc)
        scenarios = catalog["create-task"].scenarios

        assert len(scenarios) == 1
        assert scenarios[0].name == "Create Task"
        assert len(scenarios[0].steps) == 4

    def test_nested_scenarios(self, sample_behaviors_doc: str) -> None:
        """Test nested Scenarios headings produce one scenario each."""
        edit = parse_behaviors(sample_behaviors_doc)["edit-task"]

        assert [s.name for s in edit.scenarios] == ["Rename", "Cancel"]
        assert len(edit.scenarios[1].steps) == 3

    def test_dependencies_in_order(self, sample_behaviors_doc: str) -> None:
        """Test numbered dependencies keep their declared order."""
        edit = parse_behaviors(sample_behaviors_doc)["edit-task"]
        assert edit.dependency_ids == ["sign-up", "create-task"]

    def test_dependency_with_scenario_name(self) -> None:
        """Test 'N. Title: scenario' selects a named scenario."""
        content = """## Behaviors

### Base
#### Steps
* Act: Click go

### Child
#### Dependencies
1. Base: Happy path
#### Steps
* Act: Click next
"""
        child = parse_behaviors(content)["child"]

        assert child.dependencies[0].behavior_id == "base"
        assert child.dependencies[0].scenario_name == "Happy path"

    def test_page_paths_attached(self, sample_behaviors_doc: str) -> None:
        """Test behaviors listed under a page get its path."""
        catalog = parse_behaviors(sample_behaviors_doc)

        assert catalog["create-task"].page_path == "/tasks"
        assert catalog["edit-task"].page_path == "/tasks"
        assert catalog["sign-up"].page_path is None

    def test_missing_dependency_is_error(self) -> None:
        """Test a dependency on an unknown behavior fails parsing."""
        content = """## Behaviors

### Child
#### Dependencies
1. Ghost
#### Steps
* Act: Click next
"""
        with pytest.raises(SpecParseError, match="ghost"):
            parse_behaviors(content)

    def test_missing_dependency_allowed_without_validation(self) -> None:
        """Test validation can be turned off."""
        content = """## Behaviors

### Child
#### Dependencies
1. Ghost
#### Steps
* Act: Click next
"""
        catalog = parse_behaviors(content, validate=False)
        assert catalog["child"].dependency_ids == ["ghost"]

    def test_behavior_without_scenarios(self) -> None:
        """Test a behavior with no steps parses with no scenarios."""
        catalog = parse_behaviors("## Behaviors\n\n### Empty\nNothing yet.\n")
        assert catalog["empty"].scenarios == ()
        assert catalog["empty"].scenario() is None

    def test_no_behaviors_section(self) -> None:
        """Test documents without a Behaviors section yield an empty catalog."""
        assert parse_behaviors("# Title\n* Act: Click go\n") == {}


class TestParseString:
    """Tests for whole-document parsing."""

    def test_name_and_directory(self, sample_behaviors_doc: str) -> None:
        """Test the document title and directory are captured."""
        spec = SpecParser().parse_string(sample_behaviors_doc)

        assert spec.name == "Task Manager"
        assert spec.directory == "apps/tasks"

    def test_scenarios_from_behaviors(self, sample_behaviors_doc: str) -> None:
        """Test behavior scenarios double as runnable examples."""
        spec = SpecParser().parse_string(sample_behaviors_doc)
        assert "Rename" in spec.scenario_names()

    def test_parse_spec_function(self, sample_behaviors_doc: str) -> None:
        """Test the module-level helper matches the parser."""
        assert parse_spec(sample_behaviors_doc) == SpecParser().parse_string(sample_behaviors_doc)

    def test_examples_section(self) -> None:
        """Test an Examples section takes precedence."""
        content = """# Demo

## Examples

### Happy path
#### Steps
* Act: Click go
* Check: URL contains /done

### Empty example
#### Steps
"""
        spec = SpecParser().parse_string(content)

        assert spec.scenario_names() == ["Happy path"]
        assert spec.scenarios[0].steps[1].line_number == 8

    def test_default_scenario(self) -> None:
        """Test loose step lines form a single Default scenario."""
        spec = SpecParser().parse_string("# Loose\n\n* Act: Click go\n* Check: Done is shown\n")

        assert spec.scenario_names() == [DEFAULT_SCENARIO_NAME]
        assert len(spec.scenarios[0].steps) == 2

    def test_unnamed_document(self) -> None:
        """Test a document without a title is named Unnamed."""
        assert SpecParser().parse_string("* Act: Click go").name == "Unnamed"

    def test_crlf_line_endings(self) -> None:
        """Test Windows line endings are normalized."""
        spec = SpecParser().parse_string("# T\r\n* Act: Click go\r\n")
        assert spec.scenarios[0].steps[0].instruction == "Click go"


class TestParseFile:
    """Tests for file-based parsing."""

    def test_parse_file(self, temp_dir: Path, sample_behaviors_doc: str) -> None:
        """Test parsing from disk."""
        path = temp_dir / "spec.md"
        path.write_text(sample_behaviors_doc)

        spec = parse_file(path)
        assert len(spec.behaviors) == 4

    def test_missing_file(self, temp_dir: Path) -> None:
        """Test a missing file raises a parse error."""
        with pytest.raises(SpecParseError, match="File not found"):
            parse_file(temp_dir / "missing.md")


class TestParsePagePaths:
    """Tests for the Pages section."""

    def test_multiple_pages(self) -> None:
        """Test each page's behaviors map to that page's path."""
        content = """## Pages

### Home
**Path:** `/`

#### Behaviors
- Sign Out

### Settings
**Path:** `/settings`

#### Behaviors
- Change Theme
- Change Language

## Behaviors
"""
        assert parse_page_paths(content) == {
            "sign-out": "/",
            "change-theme": "/settings",
            "change-language": "/settings",
        }
