#!/usr/bin/env python3
"""
Configuration for the image migrator.

This module loads the migration plan from its YAML file and holds the
run-wide settings (credentials, parallelism, dry-run) resolved from
command-line flags and environment variables.

Plan file format:

    migrationUnits:
      - sourceImage: docker.io/library/alpine:3.19
        destinationImage: registry.example.com/mirror/alpine:3.19
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

import yaml

from image_migrator.auth import RegistryCredentials
from image_migrator.error_utils import ConfigLoadError, ErrorCategory, create_config_load_error

PLAN_UNITS_KEY = "migrationUnits"
SOURCE_IMAGE_KEY = "sourceImage"
DESTINATION_IMAGE_KEY = "destinationImage"


@dataclass(frozen=True)
class MigrationUnit:
    """One source-to-destination image migration."""

    source_image: str
    destination_image: str

    @classmethod
    def from_dict(cls, data: Any, index: int, config_path: str) -> "MigrationUnit":
        """Build a unit from one entry of the plan's migrationUnits list.

        A missing or null image loads as an empty reference, which fails that
        unit at migration time without affecting the rest of the plan.
        Scalar values are taken as their string form, unchanged.

        Raises:
            ConfigLoadError: If the entry is not a mapping or a field is a
                list or mapping
        """
        if not isinstance(data, dict):
            raise _malformed(config_path, f"{PLAN_UNITS_KEY}[{index}] must be a mapping, got {type(data).__name__}")

        values = []
        for key in (SOURCE_IMAGE_KEY, DESTINATION_IMAGE_KEY):
            value = data.get(key)
            if value is None:
                logging.warning(f"{PLAN_UNITS_KEY}[{index}].{key} is missing in {config_path}, the unit will fail")
                value = ""
            elif isinstance(value, (dict, list)):
                raise _malformed(config_path, f"{PLAN_UNITS_KEY}[{index}].{key} must be a string, got {type(value).__name__}")
            values.append(str(value))

        return cls(source_image=values[0], destination_image=values[1])


@dataclass(frozen=True)
class MigrationPlan:
    """Ordered, immutable list of migration units."""

    units: Tuple[MigrationUnit, ...] = ()
    source: Optional[str] = None

    def __iter__(self) -> Iterator[MigrationUnit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)


@dataclass(frozen=True)
class MigratorSettings:
    """Run-wide settings, resolved once at startup and shared read-only."""

    pull_credentials: RegistryCredentials = field(default_factory=RegistryCredentials)
    push_credentials: RegistryCredentials = field(default_factory=RegistryCredentials)
    max_workers: int = 1
    dry_run: bool = False

    def __post_init__(self):
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigLoadError(
                message=f"max_workers must be a positive integer, got: {self.max_workers}",
                category=ErrorCategory.CONFIGURATION,
                suggestions=["Pass --max-workers 1 for sequential migration"],
            )


def _malformed(config_path: str, reason: str) -> ConfigLoadError:
    return create_config_load_error(config_path, ValueError(reason))


def parse_migration_plan(data: Any, config_path: str = "<memory>") -> MigrationPlan:
    """Build a MigrationPlan from already-parsed YAML data.

    A missing, null or empty document is a valid plan with no units.

    Raises:
        ConfigLoadError: If the document does not have the plan's shape
    """
    if data is None:
        return MigrationPlan(units=(), source=config_path)
    if not isinstance(data, dict):
        raise _malformed(config_path, f"top level must be a mapping, got {type(data).__name__}")

    raw_units = data.get(PLAN_UNITS_KEY)
    if raw_units is None:
        logging.warning(f"No '{PLAN_UNITS_KEY}' found in {config_path}, nothing to migrate")
        return MigrationPlan(units=(), source=config_path)
    if not isinstance(raw_units, list):
        raise _malformed(config_path, f"'{PLAN_UNITS_KEY}' must be a list, got {type(raw_units).__name__}")

    units = tuple(MigrationUnit.from_dict(entry, i, config_path) for i, entry in enumerate(raw_units))
    return MigrationPlan(units=units, source=config_path)


def load_migration_plan(config_path: str) -> MigrationPlan:
    """Load the migration plan from a YAML file.

    Args:
        config_path: Path to the plan file

    Returns:
        The loaded MigrationPlan, units in file order

    Raises:
        ConfigLoadError: If the file is unreadable, not valid YAML, or not shaped like a plan
    """
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise create_config_load_error(config_path, e) from e

    plan = parse_migration_plan(data, config_path)
    logging.info(f"Loaded {len(plan)} migration unit(s) from {config_path}")
    return plan


def _env_int(env: Dict[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigLoadError(
            message=f"{name} must be an integer, got: {value}",
            category=ErrorCategory.CONFIGURATION,
        )


def settings_from_values(
    pull_username: Optional[str] = None,
    pull_password: Optional[str] = None,
    push_username: Optional[str] = None,
    push_password: Optional[str] = None,
    max_workers: Optional[int] = None,
    dry_run: bool = False,
    environ: Optional[Dict[str, str]] = None,
) -> MigratorSettings:
    """Resolve MigratorSettings from explicit values with environment fallbacks.

    Explicit values win; None falls back to PULL_REGISTRY_USERNAME,
    PULL_REGISTRY_PASSWORD, PUSH_REGISTRY_USERNAME, PUSH_REGISTRY_PASSWORD and
    MIGRATION_MAX_WORKERS.
    """
    env = os.environ if environ is None else environ

    def pick(value: Optional[str], env_name: str) -> str:
        if value is not None:
            return value
        return env.get(env_name, "")

    if max_workers is None:
        max_workers = _env_int(env, "MIGRATION_MAX_WORKERS", 1)

    return MigratorSettings(
        pull_credentials=RegistryCredentials(
            username=pick(pull_username, "PULL_REGISTRY_USERNAME"),
            password=pick(pull_password, "PULL_REGISTRY_PASSWORD"),
        ),
        push_credentials=RegistryCredentials(
            username=pick(push_username, "PUSH_REGISTRY_USERNAME"),
            password=pick(push_password, "PUSH_REGISTRY_PASSWORD"),
        ),
        max_workers=max_workers,
        dry_run=dry_run,
    )
