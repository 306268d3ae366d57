"""
Command-line interface for the SpecQA verification engine.

Provides commands for validating behavior documents, printing dependency
chains, running a single example and verifying every behavior.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import sys
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from specqa import __version__
from specqa.config import VerificationConfig, load_verification_config
from specqa.dsl.parser import SpecParseError, SpecParser
from specqa.dsl.validator import CatalogValidationError, CatalogValidator
from specqa.llm.client import create_llm_client
from specqa.llm.config import ToolName, load_llm_config
from specqa.llm.judge import LLMDiffOracle, LLMJudge
from specqa.orchestrator.dependency_chain import ChainBuildError, build_dependency_chain
from specqa.runner.scenario_runner import ScenarioRunner, ScenarioSelectionError

if TYPE_CHECKING:
    from playwright.async_api import Page

    from specqa.runner.adapters import ActionAgent

logger = structlog.get_logger(__name__)

AgentFactory = Callable[["Page"], "ActionAgent"]


def main() -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args()

    configure_logging(args.verbose if hasattr(args, "verbose") else False)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.error("Command failed", error=str(e))
        if hasattr(args, "verbose") and args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="specqa",
        description="Verify web application behaviors described in natural language",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"specqa {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser("validate", help="Validate behavior documents")
    validate_parser.add_argument("paths", nargs="+", help="Behavior document(s) to validate")
    validate_parser.set_defaults(func=cmd_validate)

    chain_parser = subparsers.add_parser("chain", help="Print the dependency chain of a behavior")
    chain_parser.add_argument("path", help="Behavior document")
    chain_parser.add_argument("behavior", help="Behavior id")
    chain_parser.add_argument("--config", "-c", help="Verification config file (YAML)")
    chain_parser.set_defaults(func=cmd_chain)

    for name, help_text, func in (
        ("verify", "Verify every behavior against a running application", cmd_verify),
        ("run", "Run one example scenario from a specification", cmd_run),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("path", help="Behavior or specification document")
        sub.add_argument("--base-url", "-u", help="Base URL of the application under test")
        sub.add_argument(
            "--agent",
            required=True,
            help="Agent factory as 'module:callable'; called with the Playwright page",
        )
        sub.add_argument("--config", "-c", help="Verification config file (YAML)")
        sub.add_argument("--llm-config", help="LLM config file (YAML)")
        sub.add_argument("--output-file", "-o", help="Write the JSON result to this file")
        sub.add_argument("--headed", action="store_true", help="Show the browser window")
        sub.set_defaults(func=func)

    run_parser = subparsers.choices["run"]
    run_parser.add_argument("--example", "-e", help="Example name (default: all examples)")

    return parser


def configure_logging(verbose: bool) -> None:
    """Configure structured logging."""
    level = "DEBUG" if verbose else "INFO"
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if verbose else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    import logging

    logging.basicConfig(level=getattr(logging, level))


def load_agent_factory(spec: str) -> AgentFactory:
    """Resolve a 'module:callable' reference."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Agent must be given as 'module:callable', got {spec!r}")
    factory = getattr(importlib.import_module(module_name), attr, None)
    if not callable(factory):
        raise ValueError(f"{spec!r} is not callable")
    return factory


def _load_config(args: argparse.Namespace) -> VerificationConfig:
    overrides: dict[str, Any] = {"base_url": getattr(args, "base_url", None)}
    if getattr(args, "headed", False):
        overrides["headless"] = False
    return load_verification_config(args.config, **overrides)


def _write_output(payload: dict[str, Any], output_file: str | None) -> None:
    output = json.dumps(payload, indent=2)
    if output_file:
        Path(output_file).write_text(output)
        print(f"Results written to {output_file}")
    else:
        print(output)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate behavior documents."""
    parser = SpecParser(validate=False)
    validator = CatalogValidator()
    errors = 0

    for path_str in args.paths:
        path = Path(path_str)

        if not path.exists():
            print(f"Error: Path not found: {path}", file=sys.stderr)
            errors += 1
            continue

        try:
            spec = parser.parse_file(path)
            validator.validate_or_raise(spec.behaviors)
        except (SpecParseError, CatalogValidationError) as e:
            print(f"Invalid: {path}", file=sys.stderr)
            print(f"  {e}", file=sys.stderr)
            errors += 1
            continue

        print(f"Valid: {path} ({len(spec.behaviors)} behaviors, {len(spec.scenarios)} examples)")
        for warning in validator.warnings(spec.behaviors):
            print(f"  Warning: {warning}")

    if errors:
        print(f"\n{errors} file(s) with errors", file=sys.stderr)
        return 1

    print("\nAll files valid")
    return 0


def cmd_chain(args: argparse.Namespace) -> int:
    """Print the dependency chain of one behavior, dependencies first."""
    config = load_verification_config(args.config)
    spec = SpecParser().parse_file(args.path)

    try:
        chain = build_dependency_chain(args.behavior, spec.behaviors, config.cycle_policy)
    except ChainBuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for index, step in enumerate(chain, start=1):
        scenario = step.behavior.scenario(step.scenario_name)
        scenario_label = f" [{scenario.name}]" if scenario else " [no scenarios]"
        print(f"{index}. {step.behavior.id}{scenario_label}")
    return 0


@asynccontextmanager
async def open_runner(args: argparse.Namespace, config: VerificationConfig) -> AsyncIterator[ScenarioRunner]:
    """Launch a browser page and wire the agent and judgment adapters to it."""
    from dotenv import load_dotenv
    from playwright.async_api import async_playwright

    # Load environment variables from .env file
    load_dotenv()

    factory = load_agent_factory(args.agent)
    llm_config = load_llm_config(args.llm_config)

    async with AsyncExitStack() as stack:
        judge_client = await stack.enter_async_context(create_llm_client(llm_config, ToolName.JUDGE))
        diff_client = await stack.enter_async_context(
            create_llm_client(llm_config, ToolName.DIFF_ORACLE)
        )
        if judge_client is None or diff_client is None:
            raise RuntimeError("The judge and diff oracle LLM tools must both be enabled")

        playwright = await stack.enter_async_context(async_playwright())
        logger.info("Launching browser", headless=config.headless)
        browser = await playwright.chromium.launch(headless=config.headless)
        stack.push_async_callback(browser.close)
        page = await browser.new_page()

        judge = LLMJudge(
            judge_client,
            page,
            temperature=llm_config.get_effective_temperature(ToolName.JUDGE),
            system_prompt=llm_config.judge.custom_system_prompt,
        )
        diff = LLMDiffOracle(
            diff_client,
            temperature=llm_config.get_effective_temperature(ToolName.DIFF_ORACLE),
            system_prompt=llm_config.diff_oracle.custom_system_prompt,
        )
        yield ScenarioRunner(page, factory(page), judge, diff, config)


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify every behavior in a document."""
    from specqa.orchestrator.scheduler import verify_instruction_file

    config = _load_config(args)

    async def verify() -> dict[str, Any]:
        async with open_runner(args, config) as runner:
            summary = await verify_instruction_file(args.path, runner, config)
        return summary.to_dict()

    result = asyncio.run(verify())
    _write_output(result, args.output_file)
    print(f"\n{result['summary']}")
    return 0 if result["total"] > 0 and result["passed"] == result["total"] else 1


def cmd_run(args: argparse.Namespace) -> int:
    """Run one example scenario from a specification document."""
    config = _load_config(args)
    spec = SpecParser().parse_file(args.path)

    async def run() -> dict[str, Any]:
        async with open_runner(args, config) as runner:
            result = await runner.run_spec(spec, args.example)
        return result.to_dict()

    try:
        result = asyncio.run(run())
    except ScenarioSelectionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _write_output(result, args.output_file)
    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
