"""
Command line for the capacity planner.

Exit codes: 0 success, 2 invalid input, 3 namespace not configured.

Usage:
    capacity-core absence add ada 2025-03-10 2025-03-12 --type vacation
    capacity-core --data tracker.json capacity "Sprint-1"
    capacity-core --data tracker.json forecast --weeks 8 --scenario baseline
"""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import Config
from .errors import CapacityError, EXIT_OK
from .models import TeamMember
from .planner import CapacityPlanner
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)


class InputFileError(CapacityError):
    """A data or CSV file that cannot be read."""


def _read_text(path: str) -> str:
    try:
        with open(path, encoding="utf-8-sig") as f:
            return f.read()
    except OSError as e:
        raise InputFileError(f"Cannot read {path}: {e.strerror}") from None


def load_tracker_data(path: str) -> dict:
    """
    Read issues, iterations and milestones from a JSON file.

    The file is either an object with ``issues``, ``iterations`` and
    ``milestones`` lists, or a bare list of issues.
    """
    try:
        data = json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        raise InputFileError(f"{path} is not valid JSON: {e.msg}") from None
    if isinstance(data, list):
        return {"issues": data, "iterations": [], "milestones": []}
    if not isinstance(data, dict):
        raise InputFileError(f"{path} must contain a JSON object or list")
    return {
        "issues": data.get("issues") or [],
        "iterations": data.get("iterations") or [],
        "milestones": data.get("milestones") or [],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capacity-core",
        description="Team capacity, absence and forecast planning",
    )
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--store", help="JSON store file (overrides storage.path)")
    parser.add_argument("--project", help="Project key (overrides project.key)")
    parser.add_argument("--data", help="JSON file with issues, iterations and milestones")
    parser.add_argument("--today", help="Reference day (YYYY-MM-DD) for forecasts and workload")
    parser.add_argument("--log-level", help="Logging level (overrides logging.level)")

    commands = parser.add_subparsers(dest="command", required=True)

    # absence
    absence = commands.add_parser("absence", help="Manage absences")
    absence_commands = absence.add_subparsers(dest="action", required=True)

    add = absence_commands.add_parser("add", help="Record an absence")
    add.add_argument("username")
    add.add_argument("start")
    add.add_argument("end")
    add.add_argument("--type", default="vacation", choices=["vacation", "training", "sick", "other"])
    add.add_argument("--reason", default="")

    remove = absence_commands.add_parser("remove", help="Delete an absence by id")
    remove.add_argument("absence_id")

    listing = absence_commands.add_parser("list", help="List absences")
    listing.add_argument("--user")
    listing.add_argument("--start")
    listing.add_argument("--end")

    imports = absence_commands.add_parser("import", help="Import absences from CSV")
    imports.add_argument("path")

    export = absence_commands.add_parser("export", help="Export absences as CSV")
    export.add_argument("--start")
    export.add_argument("--end")
    export.add_argument("-o", "--output", help="Write to a file instead of stdout")

    stats = absence_commands.add_parser("stats", help="Team absence statistics")
    stats.add_argument("start")
    stats.add_argument("end")

    # team
    team = commands.add_parser("team", help="Manage the roster")
    team_commands = team.add_subparsers(dest="action", required=True)
    team_commands.add_parser("list", help="List active members")
    admit = team_commands.add_parser("add", help="Admit a member")
    admit.add_argument("username")
    admit.add_argument("--name")
    admit.add_argument("--role")
    admit.add_argument("--hours", type=float, help="Base weekly hours")
    leave = team_commands.add_parser("remove", help="Soft-remove a member")
    leave.add_argument("username")
    team_commands.add_parser("import", help="Admit every issue assignee (needs --data)")

    # queries
    capacity = commands.add_parser("capacity", help="Capacity breakdown for an iteration")
    capacity.add_argument("iteration", help="Iteration id or name")

    velocity = commands.add_parser("velocity", help="Member or team velocity")
    velocity.add_argument("username", nargs="?")

    workload = commands.add_parser("workload", help="Workload distribution")
    workload.add_argument("--iteration")

    commands.add_parser("burnout", help="Burnout risks")

    forecast = commands.add_parser("forecast", help="Weekly capacity forecast")
    forecast.add_argument("--weeks", type=int, default=12)
    forecast.add_argument("--scenario", default="baseline")

    # policy
    policy = commands.add_parser("policy", help="Velocity and capacity policy")
    policy_commands = policy.add_subparsers(dest="action", required=True)
    policy_commands.add_parser("show", help="Show the policy")
    policy_commands.add_parser("reset", help="Restore the defaults")
    update = policy_commands.add_parser("set", help="Change policy options")
    update.add_argument("--velocity-mode", choices=["dynamic", "static"])
    update.add_argument("--metric-type", choices=["points", "issues"])
    update.add_argument("--static-hours-per-story-point", type=float)
    update.add_argument("--static-hours-per-issue", type=float)
    update.add_argument("--velocity-lookback-iterations", type=int)
    update.add_argument("--default-weekly-capacity", type=float)

    # serve
    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


_POLICY_OPTIONS = (
    "velocity_mode",
    "metric_type",
    "static_hours_per_story_point",
    "static_hours_per_issue",
    "velocity_lookback_iterations",
    "default_weekly_capacity",
)


def _run_absence(planner: CapacityPlanner, args):
    store = planner.absences
    if args.action == "add":
        return store.add(args.username, args.start, args.end, args.type, args.reason).to_dict()
    if args.action == "remove":
        store.remove(args.absence_id)
        return {"removed": args.absence_id}
    if args.action == "list":
        calendar = store.snapshot()
        if args.user:
            absences = calendar.for_user(args.user, args.start, args.end)
        elif args.start and args.end:
            absences = calendar.in_range(args.start, args.end)
        else:
            absences = calendar.all()
        return [a.to_dict() for a in absences]
    if args.action == "import":
        return store.import_csv(_read_text(args.path)).to_dict()
    if args.action == "export":
        text = store.export_csv(args.start, args.end)
        if args.output:
            with open(args.output, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            return None
        return text
    return planner.team_absence_stats(args.start, args.end)


def _run_team(planner: CapacityPlanner, args):
    if args.action == "list":
        return [m.to_dict() for m in planner.roster.members()]
    if args.action == "add":
        member = TeamMember(
            username=args.username,
            display_name=args.name,
            role=args.role,
            base_weekly_hours=args.hours,
        )
        return planner.roster.admit(member).to_dict()
    if args.action == "remove":
        return planner.roster.remove(args.username).to_dict()
    return planner.import_team_from_issues()


def _run_policy(planner: CapacityPlanner, args):
    if args.action == "show":
        return planner.policy.load().to_dict()
    if args.action == "reset":
        return planner.policy.reset().to_dict()
    changes = {name: getattr(args, name) for name in _POLICY_OPTIONS if getattr(args, name) is not None}
    return planner.policy.update(**changes).to_dict()


def run(args, config: Config):
    """Execute a parsed command and return its printable result."""
    project_key = args.project or config.project_key
    store = config.create_store()

    planner = CapacityPlanner(
        store,
        project_key,
        today=args.today,
        roster_seed=config.team_members,
        policy_seed=config.policy_seed,
    )
    if args.data:
        data = load_tracker_data(args.data)
        planner.load(data["issues"], data["iterations"], data["milestones"])

    if args.command == "absence":
        return _run_absence(planner, args)
    if args.command == "team":
        return _run_team(planner, args)
    if args.command == "policy":
        return _run_policy(planner, args)
    if args.command == "capacity":
        return planner.capacity_breakdown(args.iteration)
    if args.command == "velocity":
        return planner.member_velocity(args.username) if args.username else planner.team_velocity()
    if args.command == "workload":
        return planner.workload_distribution(args.iteration)
    if args.command == "burnout":
        return planner.burnout_risks()
    if args.command == "forecast":
        return planner.scenario_forecast(args.scenario, args.weeks)
    raise ValueError(f"Unhandled command: {args.command}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config(args.config)
    if args.store:
        config.set("storage", "path", args.store)
    setup_logging(args.log_level or config.log_level)

    if args.command == "serve":
        import uvicorn
        uvicorn.run("capacity_core.api:app", host=args.host, port=args.port)
        return EXIT_OK

    try:
        result = run(args, config)
    except CapacityError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code

    if isinstance(result, str):
        sys.stdout.write(result)
    elif result is not None:
        print(json.dumps(result, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
