#!/usr/bin/env python3
"""
Command-line entry point for migrating container images between registries.

Workflow:
1. Load the migration plan (YAML) given by --configPath
2. Verify the Docker engine is reachable
3. Pull, tag and push each unit of the plan, continuing past failed units
4. Optionally write a JSON migration report

Usage examples:
  # Anonymous pull, authenticated push
  image-migrator --configPath migration.yaml --push-username ci --push-password "$TOKEN"

  # Preview the plan without touching the engine
  image-migrator --configPath migration.yaml --dry-run

  # Migrate four units at a time and save a report
  image-migrator --configPath migration.yaml --max-workers 4 --output reports/migration.json
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from image_migrator.config_manager import load_migration_plan, settings_from_values
from image_migrator.docker_client import DockerEngineClient
from image_migrator.error_utils import ConfigLoadError
from image_migrator.logging_utils import get_logger, log_exception, setup_logging
from image_migrator.migration import RegistryMigrator
from image_migrator.report_utils import save_json

logger = get_logger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="image-migrator",
        description="Migrate container images from one registry to another",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Migrate with separate pull and push credentials
  image-migrator --configPath migration.yaml \\
    --pull-username reader --pull-password "$PULL_TOKEN" \\
    --push-username writer --push-password "$PUSH_TOKEN"

  # Credentials can also come from the environment
  PUSH_REGISTRY_USERNAME=writer PUSH_REGISTRY_PASSWORD=... image-migrator --configPath migration.yaml

  # Preview the plan without touching the engine
  image-migrator --configPath migration.yaml --dry-run
        """,
    )

    parser.add_argument(
        "--pull-username",
        default=None,
        help="Username for registry login in pull action (env: PULL_REGISTRY_USERNAME)",
    )
    parser.add_argument(
        "--pull-password",
        default=None,
        help="Password for registry login in pull action (env: PULL_REGISTRY_PASSWORD)",
    )
    parser.add_argument(
        "--push-username",
        default=None,
        help="Username for registry login in push action (env: PUSH_REGISTRY_USERNAME)",
    )
    parser.add_argument(
        "--push-password",
        default=None,
        help="Password for registry login in push action (env: PUSH_REGISTRY_PASSWORD)",
    )
    parser.add_argument(
        "--configPath",
        "--config-path",
        dest="config_path",
        default=os.environ.get("CONFIG_FILE", ""),
        help="Migration plan YAML file (env: CONFIG_FILE)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Number of units migrated in parallel (default: 1, env: MIGRATION_MAX_WORKERS)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log what would be migrated without pulling, tagging or pushing",
    )
    parser.add_argument(
        "--output",
        help="Write a JSON migration report to this file",
    )
    parser.add_argument(
        "--timestamp",
        action="store_true",
        help="Add a timestamp to the report filename (e.g. migration-2026-01-15-14-30-00.json)",
    )
    parser.add_argument(
        "--docker-host",
        default=None,
        help="Docker engine address (default: DOCKER_HOST or the local socket)",
    )
    parser.add_argument(
        "--engine-timeout",
        type=int,
        default=None,
        help="Socket timeout in seconds for Docker engine requests",
    )
    parser.add_argument(
        "--skip-health-check",
        action="store_true",
        help="Do not ping the Docker engine before migrating",
    )
    parser.add_argument(
        "--allow-failures",
        action="store_true",
        help="Exit 0 even when some units failed to migrate",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    if not args.config_path:
        logger.error("configPath is empty and exit")
        return 1

    try:
        plan = load_migration_plan(args.config_path)
        settings = settings_from_values(
            pull_username=args.pull_username,
            pull_password=args.pull_password,
            push_username=args.push_username,
            push_password=args.push_password,
            max_workers=args.max_workers,
            dry_run=args.dry_run,
        )
    except ConfigLoadError as e:
        logger.error(str(e))
        return 1

    if settings.pull_credentials.is_anonymous:
        logger.info("No pull credentials provided, pulling anonymously")
    if settings.push_credentials.is_anonymous:
        logger.warning(
            "No push credentials provided (--push-username/--push-password). "
            "The engine will attempt unauthenticated pushes to the destination registry."
        )

    engine = DockerEngineClient(base_url=args.docker_host, timeout=args.engine_timeout)
    try:
        if not settings.dry_run and not args.skip_health_check:
            logger.info("Running health checks...")
            if not engine.ping():
                logger.error("Health checks failed, aborting migration")
                return 1
            logger.info("✓ Docker engine is reachable")

        summary = RegistryMigrator(engine, settings).run(plan)
    except KeyboardInterrupt:
        logger.warning("\nMigration interrupted by user")
        return 1
    except Exception as e:
        log_exception(logger, "Error in migration", exc_info=e)
        return 1
    finally:
        engine.close()

    if args.output:
        save_json(args.output, summary.to_dict(), timestamp=args.timestamp)

    if summary.failed and not args.allow_failures:
        logger.error(f"{summary.failed} of {summary.total} unit(s) failed to migrate")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
