"""Command-line administration of feature gates.

Usage:
    featuregate-admin init-db
    featuregate-admin list
    featuregate-admin show new-nav
    featuregate-admin enable new-nav                       # on for everyone
    featuregate-admin enable new-nav --group beta_testers
    featuregate-admin enable new-nav --actor user-42
    featuregate-admin enable new-nav --percentage 25
    featuregate-admin enable new-nav --percentage-of-time 5
    featuregate-admin disable new-nav                      # clears every gate
    featuregate-admin remove new-nav
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from featuregate.core.config import settings
from featuregate.core.exceptions import FeatureGateError
from featuregate.core.logging import configure_logging, get_logger
from featuregate.services.adapters import SQLAlchemyAdapter
from featuregate.services.registry import Registry, create_registry
from featuregate.services.targets import (
    ActorTarget,
    BooleanTarget,
    GroupTarget,
    MutationTarget,
    PercentageOfActorsTarget,
    PercentageOfTimeTarget,
)

logger = get_logger(__name__)


def _add_target_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--group", help="Group name")
    group.add_argument("--actor", help="Actor id")
    group.add_argument("--percentage", type=int, help="Percentage of actors (0-100)")
    group.add_argument("--percentage-of-time", type=int, help="Percentage of time (0-100)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="featuregate-admin", description="Manage feature gates")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create feature tables (SQL adapter only)")
    subparsers.add_parser("list", help="List persisted features")

    show = subparsers.add_parser("show", help="Show a feature's gates")
    show.add_argument("key")

    enable = subparsers.add_parser("enable", help="Enable a feature")
    enable.add_argument("key")
    _add_target_options(enable)

    disable = subparsers.add_parser("disable", help="Disable a feature")
    disable.add_argument("key")
    _add_target_options(disable)

    add = subparsers.add_parser("add", help="Persist a feature without enabling it")
    add.add_argument("key")

    remove = subparsers.add_parser("remove", help="Delete a feature")
    remove.add_argument("key")

    check = subparsers.add_parser("check", help="Evaluate a feature for an actor id")
    check.add_argument("key")
    check.add_argument("--actor", help="Actor id to evaluate")

    return parser


def target_from_args(args: argparse.Namespace, enabling: bool) -> MutationTarget:
    """Translate target options into a mutation target."""
    if args.group:
        return GroupTarget(args.group)
    if args.actor:
        return ActorTarget(args.actor)
    if args.percentage is not None:
        return PercentageOfActorsTarget(args.percentage)
    if args.percentage_of_time is not None:
        return PercentageOfTimeTarget(args.percentage_of_time)
    return BooleanTarget(enabling)


def run(args: argparse.Namespace, registry: Registry) -> int:
    """Execute one parsed command. Returns the process exit code."""
    if args.command == "init-db":
        if not isinstance(registry.adapter, SQLAlchemyAdapter):
            print(f"init-db needs the sqlalchemy adapter, not {registry.adapter.name}")
            return 1
        registry.adapter.create_tables()
        print("Feature tables ready")
        return 0

    if args.command == "list":
        features = registry.all()
        for feature in features:
            print(f"{feature.name}\t{feature.state.value}")
        print(f"Total: {len(features)} features")
        return 0

    if args.command == "show":
        feature = registry.get(args.key)
        data = feature.to_dict()
        data["persisted"] = registry.is_persisted(feature)
        print(json.dumps(data, indent=2))
        return 0

    if args.command == "enable":
        registry.enable(args.key, target_from_args(args, enabling=True))
        print(f"Enabled {args.key}")
        return 0

    if args.command == "disable":
        registry.disable(args.key, target_from_args(args, enabling=False))
        print(f"Disabled {args.key}")
        return 0

    if args.command == "add":
        registry.add(args.key)
        print(f"Added {args.key}")
        return 0

    if args.command == "remove":
        removed = registry.remove(args.key)
        print(f"Removed {args.key}" if removed else f"{args.key} was not persisted")
        return 0

    if args.command == "check":
        enabled = registry.get(args.key).is_enabled(args.actor)
        print("enabled" if enabled else "disabled")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None, registry: Optional[Registry] = None) -> int:
    """Main entry point with CLI argument parsing."""
    args = build_parser().parse_args(argv)
    configure_logging(settings)

    try:
        if registry is None:
            registry = create_registry(settings)
        return run(args, registry)
    except FeatureGateError as e:
        logger.error("featuregate_admin_failed", command=args.command, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
