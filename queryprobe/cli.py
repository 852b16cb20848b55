"""CLI entry point for queryprobe."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import Any, Sequence

from queryprobe.config.loader import initialize_config, load_config
from queryprobe.config.schema import VALID_FAILURE_POLICIES, AppConfig
from queryprobe.core.doctor import run_diagnostics
from queryprobe.core.errors import QueryProbeError
from queryprobe.core.logging import configure_logging
from queryprobe.core.plugin import SessionFactory
from queryprobe.core.runner import run_sequences
from queryprobe.fixtures.loader import builtin_suite_names, load_configured_sequences, load_sequence
from queryprobe.fixtures.models import FixtureSequence
from queryprobe.fixtures.placeholders import resolve_placeholders


DEFAULT_CONFIG = Path(__file__).parent / "config" / "defaults.yml"


def _parse_assignments(items: Sequence[str] | None) -> dict[str, str]:
    assignments: dict[str, str] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{item}'")
        assignments[key] = value
    return assignments


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    parser.add_argument(
        "--sequence",
        dest="sequences",
        action="append",
        default=None,
        help="Run only this configured sequence (repeatable)",
    )
    parser.add_argument(
        "--fixture",
        dest="fixtures",
        action="append",
        type=Path,
        default=None,
        help="Add an ad-hoc fixture file (repeatable); replaces configured sequences",
    )
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Override a shared context value (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="queryprobe")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create starter config")
    init_parser.add_argument("--config", type=Path, default=Path("./config/queryprobe.yml"))
    init_parser.add_argument("--force", action="store_true")

    run_parser = subparsers.add_parser("run", help="Execute fixture sequences against the target")
    _add_selection_arguments(run_parser)
    run_parser.add_argument("--policy", type=str, choices=sorted(VALID_FAILURE_POLICIES), default=None)
    run_parser.add_argument("--timeout", type=float, default=None, help="Per-query timeout in seconds")
    run_parser.add_argument("--format", dest="output_format", choices=["text", "json"], default="text")
    run_parser.add_argument("--output", type=Path, default=None, help="Write the report to this file path")

    fixtures_parser = subparsers.add_parser("fixtures", help="Show resolved fixture cases without connecting")
    _add_selection_arguments(fixtures_parser)

    subparsers.add_parser("suites", help="List built-in fixture suites")

    doctor_parser = subparsers.add_parser("doctor", help="Run configuration and readiness diagnostics")
    doctor_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    doctor_parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Override a shared context value (repeatable)",
    )
    doctor_parser.add_argument("--check-target", action="store_true", help="Open and close one target session")

    return parser


def _select_sequences(
    config: AppConfig,
    config_path: Path,
    *,
    sequences: list[str] | None,
    fixtures: list[Path] | None,
    context: dict[str, Any],
) -> list[FixtureSequence]:
    if fixtures:
        return [load_sequence(path, context) for path in fixtures]
    return load_configured_sequences(
        config.sequences,
        context,
        base_dir=config_path.parent,
        only=sequences,
    )


def cmd_init(config_path: Path, force: bool) -> int:
    initialize_config(config_path, force=force)
    print(f"wrote config: {config_path}")
    return 0


def cmd_run(
    config_path: Path,
    *,
    sequences: list[str] | None,
    fixtures: list[Path] | None,
    assignments: dict[str, str],
    policy: str | None,
    timeout: float | None,
    output_format: str,
    output: Path | None,
) -> int:
    config = load_config(config_path)
    if policy:
        config.runner.policy = policy
    if timeout is not None:
        if timeout <= 0:
            raise ValueError("--timeout must be greater than zero")
        config.runner.query_timeout_seconds = timeout
    configure_logging(config.logging)

    context = {**config.context, **assignments}
    selected = _select_sequences(config, config_path, sequences=sequences, fixtures=fixtures, context=context)
    if not selected:
        print("no sequences selected", file=sys.stderr)
        return 2
    report = run_sequences(selected, SessionFactory(config.target), config.runner)

    rendered = report.to_json() if output_format == "json" else report.render_summary()
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered + "\n", encoding="utf-8")
        print(f"wrote report: {output}")
        if output_format != "text":
            print(report.render_summary())
    else:
        print(rendered)
    return report.exit_code


def cmd_fixtures(
    config_path: Path,
    *,
    sequences: list[str] | None,
    fixtures: list[Path] | None,
    assignments: dict[str, str],
) -> int:
    config = load_config(config_path)
    context = {**config.context, **assignments}
    selected = _select_sequences(config, config_path, sequences=sequences, fixtures=fixtures, context=context)
    payload = [
        {
            "sequence": sequence.name,
            "isolated": sequence.isolated,
            "source": sequence.source,
            "cases": [
                {
                    "index": index,
                    "name": case.label(index),
                    "query": resolve_placeholders(case.query, case.params),
                    "retries": case.retries,
                    "expected": {"kind": case.expected.kind, **case.expected.to_dict()},
                }
                for index, case in enumerate(sequence.cases)
            ],
        }
        for sequence in selected
    ]
    print(json.dumps(payload, indent=2, default=str))
    return 0


def cmd_suites() -> int:
    print(json.dumps({"suites": builtin_suite_names()}, indent=2))
    return 0


def cmd_doctor(config_path: Path, *, assignments: dict[str, str], check_target: bool) -> int:
    config = load_config(config_path)
    report = run_diagnostics(
        config,
        base_dir=config_path.parent,
        context=assignments,
        check_target=check_target,
    )
    print(json.dumps(report, indent=2))
    return 0 if bool(report.get("ok")) else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        assignments = _parse_assignments(getattr(args, "assignments", None))
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
        return 2

    try:
        if args.command == "init":
            return cmd_init(args.config, args.force)
        if args.command == "run":
            return cmd_run(
                args.config,
                sequences=args.sequences,
                fixtures=args.fixtures,
                assignments=assignments,
                policy=args.policy,
                timeout=args.timeout,
                output_format=args.output_format,
                output=args.output,
            )
        if args.command == "fixtures":
            return cmd_fixtures(
                args.config,
                sequences=args.sequences,
                fixtures=args.fixtures,
                assignments=assignments,
            )
        if args.command == "suites":
            return cmd_suites()
        if args.command == "doctor":
            return cmd_doctor(
                args.config,
                assignments=assignments,
                check_target=args.check_target,
            )
    except (QueryProbeError, FileNotFoundError, FileExistsError, ValueError) as exc:
        print(f"queryprobe: error: {exc}", file=sys.stderr)
        return 2

    parser.error(f"unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
