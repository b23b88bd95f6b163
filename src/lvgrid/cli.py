from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from .api import calculate_all_scenarios, calculate_with_simulation
from .errors import LvGridError
from .logging_setup import init_logging
from .schema import load_equipment, load_project
from .solver.radial import RadialSolver
from .solver.results import Compliance
from .topology.network import Scenario


def _print_summary(result) -> None:
    print(
        f"{result.scenario.value:<12} source {result.source_voltage_v:7.2f} V  "
        f"max deviation {result.max_voltage_drop_percent:5.2f}% "
        f"(circuit {result.max_drop_circuit if result.max_drop_circuit is not None else '-'})  "
        f"losses {result.global_losses_kw:7.3f} kW  {result.compliance.value}"
    )
    for warning in result.warnings:
        print(f"- {warning}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lvgrid",
        description="Radial LV network voltage-drop calculator.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Calculate scenarios of a project JSON.")
    run.add_argument("project", help="Path to the project JSON.")
    run.add_argument(
        "--scenario",
        "-s",
        help="Scenario to calculate (CONSUMPTION, MIXED, PRODUCTION, FORCED). Default: all.",
    )
    run.add_argument(
        "--equipment",
        "-e",
        help="Path to an equipment JSON (regulators, compensators).",
    )
    run.add_argument(
        "--output",
        "-o",
        help="Path to write the results JSON.",
    )
    run.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )

    args = parser.parse_args(argv)
    init_logging(args.log_level)

    try:
        project = load_project(args.project)
        equipment = load_equipment(args.equipment) if args.equipment else None
        scenario = Scenario.parse(args.scenario) if args.scenario else None
    except (FileNotFoundError, json.JSONDecodeError) as e:
        print(f"Input error: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        print("Input validation error:", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2
    except (LvGridError, ValueError) as e:
        print(f"Input error: {e}", file=sys.stderr)
        return 2

    try:
        if scenario is None:
            results = calculate_all_scenarios(project, equipment)
        elif equipment is not None:
            results = {scenario: calculate_with_simulation(project, scenario, equipment)}
        else:
            results = {scenario: RadialSolver().solve(project, scenario)}
    except LvGridError as e:
        print(f"Calculation error: {e}", file=sys.stderr)
        return 2

    for result in results.values():
        _print_summary(result)

    if args.output:
        payload = {
            "project": project.name,
            "results": {s.value: r.to_dict() for s, r in results.items()},
        }
        Path(args.output).write_text(json.dumps(payload, indent=2))

    critical = any(r.compliance is Compliance.CRITICAL for r in results.values())
    return 1 if critical else 0


if __name__ == "__main__":
    raise SystemExit(main())
