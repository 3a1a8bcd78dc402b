"""
Migrate container images between registries through a Docker engine.

For every unit of the migration plan:
1. Pull the source image with the pull-side credentials
2. Tag it with the destination reference
3. Push the destination reference with the push-side credentials

A failing step abandons its unit and the run moves on to the next one. Nothing
is retried or rolled back: a failed unit may leave the pulled image and the
new tag in the engine's local storage.
"""

import concurrent.futures
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from image_migrator.config_manager import MigrationPlan, MigrationUnit, MigratorSettings
from image_migrator.error_utils import MigrationError
from image_migrator.logging_utils import get_logger, log_exception


class UnitState(Enum):
    """Lifecycle of a single migration unit"""

    PENDING = "pending"
    PULLED = "pulled"
    TAGGED = "tagged"
    PUSHED = "pushed"
    FAILED = "failed"


@dataclass
class UnitResult:
    """Outcome of migrating one unit."""

    unit: MigrationUnit
    state: UnitState = UnitState.PENDING
    failed_step: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == UnitState.PUSHED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_image": self.unit.source_image,
            "destination_image": self.unit.destination_image,
            "state": self.state.value,
            "failed_step": self.failed_step,
            "error": self.error,
        }


@dataclass
class MigrationSummary:
    """Per-unit results of a run, in plan order."""

    results: List[UnitResult] = field(default_factory=list)
    dry_run: bool = False
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.state == UnitState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "total_units": self.total,
                "succeeded": self.succeeded,
                "failed": self.failed,
                "dry_run": self.dry_run,
            },
            "units": [r.to_dict() for r in self.results],
            "metadata": {
                "started_at": self.started_at,
                "finished_at": self.finished_at,
            },
        }


class RegistryMigrator:
    """Drives pull, tag and push for each unit of a migration plan."""

    def __init__(self, engine, settings: Optional[MigratorSettings] = None):
        """Initialize RegistryMigrator.

        Args:
            engine: Object exposing pull(image, auth_token), tag(source, destination)
                and push(image, auth_token), e.g. DockerEngineClient
            settings: Credentials and run options; defaults to anonymous, sequential
        """
        self.engine = engine
        self.settings = settings or MigratorSettings()
        self.logger = get_logger(self.__class__.__name__)

    def _fail(self, result: UnitResult, step: str, error: Exception) -> UnitResult:
        result.state = UnitState.FAILED
        result.failed_step = step
        result.error = error.message if isinstance(error, MigrationError) else str(error)
        self.logger.error(f"migrate image with a error: {result.error}. unit={result.unit}")
        if not isinstance(error, MigrationError):
            log_exception(self.logger, f"Unexpected error during {step} of {result.unit.source_image}", exc_info=error)
        return result

    def migrate_unit(self, unit: MigrationUnit) -> UnitResult:
        """Migrate one unit: pull, then tag, then push.

        Never raises for engine or credential failures; the returned result
        records the state reached and, on failure, the failing step.
        """
        result = UnitResult(unit=unit)
        self.logger.info(f"start migrate image. unit={unit}")

        if self.settings.dry_run:
            self.logger.info(f"Would migrate {unit.source_image} -> {unit.destination_image}")
            return result

        step = "pull"
        try:
            self.engine.pull(unit.source_image, self.settings.pull_credentials.auth_token())
            result.state = UnitState.PULLED

            step = "tag"
            self.engine.tag(unit.source_image, unit.destination_image)
            result.state = UnitState.TAGGED

            step = "push"
            self.engine.push(unit.destination_image, self.settings.push_credentials.auth_token())
            result.state = UnitState.PUSHED
        except Exception as e:
            return self._fail(result, step, e)

        self.logger.info(f"migrate image successfully. unit={unit}")
        return result

    def _log_progress(self, done: int, total: int, summary_results: List[UnitResult]) -> None:
        succeeded = sum(1 for r in summary_results if r.succeeded)
        failed = sum(1 for r in summary_results if r.state == UnitState.FAILED)
        self.logger.info(f"[{done}/{total}] units processed ({succeeded} succeeded, {failed} failed)")

    def _run_sequential(self, units: List[MigrationUnit]) -> List[UnitResult]:
        results = []
        for unit in units:
            results.append(self.migrate_unit(unit))
            self._log_progress(len(results), len(units), results)
        return results

    def _run_parallel(self, units: List[MigrationUnit]) -> List[UnitResult]:
        results: List[Optional[UnitResult]] = [None] * len(units)
        done: List[UnitResult] = []

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            future_to_index = {executor.submit(self.migrate_unit, unit): i for i, unit in enumerate(units)}

            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    result = future.result()
                except Exception as e:
                    result = self._fail(UnitResult(unit=units[index]), "unknown", e)
                results[index] = result
                done.append(result)
                self._log_progress(len(done), len(units), done)

        return results

    def run(self, plan: MigrationPlan) -> MigrationSummary:
        """Migrate every unit of the plan, continuing past failed units.

        Args:
            plan: The migration plan

        Returns:
            MigrationSummary with one result per unit, in plan order
        """
        units = list(plan)
        summary = MigrationSummary(dry_run=self.settings.dry_run)
        workers = min(self.settings.max_workers, len(units)) if units else 1

        mode = "DRY RUN: " if self.settings.dry_run else ""
        self.logger.info(f"{mode}Migrating {len(units)} image(s) with {workers} worker(s)")

        if workers > 1:
            summary.results = self._run_parallel(units)
        else:
            summary.results = self._run_sequential(units)
        summary.finished_at = datetime.now().isoformat()

        self.log_summary(summary)
        return summary

    def log_summary(self, summary: MigrationSummary) -> None:
        """Log a standardized migration summary"""
        mode = "DRY RUN: " if summary.dry_run else ""
        self.logger.info(f"{mode}Migration Summary:")
        self.logger.info(f"   Total units: {summary.total}")
        if summary.dry_run:
            self.logger.info(f"   Would migrate: {summary.total}")
            return
        self.logger.info(f"   Successfully migrated: {summary.succeeded}")
        self.logger.info(f"   Failed: {summary.failed}")
        for result in summary.results:
            if result.state == UnitState.FAILED:
                self.logger.info(f"   ✗ {result.unit.source_image} -> {result.unit.destination_image} ({result.failed_step})")
