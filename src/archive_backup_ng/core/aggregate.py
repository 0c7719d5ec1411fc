"""Run sets and ad-hoc job lists in dependency order and merge their results."""

import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from .. import __util__
from ..config import ConfigError
from ..config.schema import SET_POLICIES
from ..transaction import log_transaction
from .context import RunContext
from .graph import DependencyGraph, build_graph, check_staging_conflicts
from .models import JobResult, JobStatus, RunResult, SetResult
from .pipeline import JobPipeline

logger = logging.getLogger(__name__)


@dataclass
class SetPlan:
    """Resolved execution order of one set or job list."""

    name: Optional[str]
    on_error: str
    order: list[str]
    graph: DependencyGraph

    @property
    def label(self) -> str:
        return f"set {self.name}" if self.name else "jobs"


class RunAggregator:
    """Execute jobs in dependency order, honouring the set error policy."""

    def __init__(self, context: RunContext, pipeline: Optional[JobPipeline] = None) -> None:
        self.context = context
        self.pipeline = pipeline or JobPipeline(context)

    def plan_set(
        self, name: Optional[str], job_names: Iterable[str], on_error: str = "stop"
    ) -> SetPlan:
        """Resolve the execution order for ``job_names``.

        Raises:
            ConfigError: For unknown jobs, missing dependencies, cycles,
                staging collisions or an invalid error policy
        """
        if on_error not in SET_POLICIES:
            raise ConfigError(f"Invalid on_error policy '{on_error}' for {name or 'jobs'}")
        catalogue = self.context.config.jobs
        graph = build_graph(catalogue, job_names)
        order = graph.order()
        check_staging_conflicts(self.context.config.get_job(n) for n in order)
        return SetPlan(name=name, on_error=on_error, order=order, graph=graph)

    def plan(self, sets: Iterable[str] = (), jobs: Iterable[str] = ()) -> list[SetPlan]:
        """Resolve every requested set and job list before anything runs.

        With neither sets nor jobs, all enabled jobs form a single list.
        """
        config = self.context.config
        sets, jobs = list(sets), list(jobs)
        plans = []
        for set_name in sets:
            backup_set = config.get_set(set_name)
            if backup_set is None:
                raise ConfigError(f"Unknown set requested: '{set_name}'")
            if not backup_set.jobs:
                logger.warning("Set %s has no jobs", set_name)
                plans.append(
                    SetPlan(set_name, backup_set.on_error, [], DependencyGraph(names=[]))
                )
                continue
            plans.append(self.plan_set(backup_set.name, backup_set.jobs, backup_set.on_error))
        if jobs or not sets:
            if not jobs and not config.get_enabled_jobs():
                raise ConfigError("No enabled jobs configured")
            plans.append(self.plan_set(None, jobs))
        return plans

    def run(self, sets: Iterable[str] = (), jobs: Iterable[str] = ()) -> RunResult:
        """Run the requested sets and jobs.

        Raises:
            ConfigError: If any request cannot be resolved; nothing runs then
        """
        plans = self.plan(sets, jobs)
        result = RunResult(simulated=self.context.simulate)
        for plan in plans:
            result.sets.append(self.execute(plan))
        result.cancelled = self.context.cancelled
        result.completed_at = time.time()
        logger.info("Run finished: %s", result.status.value)
        return result

    def run_set(self, name: str, job_names: Iterable[str], on_error: str = "stop") -> SetResult:
        return self.execute(self.plan_set(name, job_names, on_error))

    def run_jobs(self, job_names: Iterable[str]) -> SetResult:
        return self.execute(self.plan_set(None, job_names))

    def execute(self, plan: SetPlan) -> SetResult:
        """Run the jobs of a resolved plan in order."""
        result = SetResult(name=plan.name, on_error=plan.on_error)
        logger.info(__util__.log_heading(f"Running {plan.label}: {', '.join(plan.order)}"))

        for position, job_name in enumerate(plan.order):
            if self.context.cancelled:
                self._skip_remaining(result, plan.order[position:], "cancelled")
                break

            blocker = self._failed_dependency(result, plan.graph, job_name)
            if blocker is not None:
                job_result = self._skip(job_name, f"dependency {blocker} did not succeed")
            else:
                job = self.context.config.get_job(job_name)
                assert job is not None
                job_result = self.pipeline.run(job)
            result.jobs.append(job_result)

            if job_result.status is JobStatus.FAILURE and plan.on_error == "stop":
                rest = plan.order[position + 1:]
                if rest:
                    logger.error(
                        "Stopping %s after failure of %s; skipping %s",
                        plan.label,
                        job_name,
                        ", ".join(rest),
                    )
                    self._skip_remaining(
                        result, rest, f"stopped: set halted after failure of {job_name}"
                    )
                    result.stopped_early = True
                break

        logger.info("Finished %s: %s", plan.label, result.status.value)
        return result

    @staticmethod
    def _failed_dependency(
        result: SetResult, graph: DependencyGraph, job_name: str
    ) -> Optional[str]:
        for dep in graph.dependencies_of(job_name):
            dep_result = result.get(dep)
            if dep_result is not None and dep_result.status in (
                JobStatus.FAILURE,
                JobStatus.SKIPPED,
            ):
                return dep
        return None

    def _skip_remaining(self, result: SetResult, names: list[str], reason: str) -> None:
        for name in names:
            result.jobs.append(self._skip(name, reason))

    @staticmethod
    def _skip(job_name: str, reason: str) -> JobResult:
        logger.warning("Skipping job %s: %s", job_name, reason)
        log_transaction(action="job", status=JobStatus.SKIPPED.value, job=job_name, error=reason)
        return JobResult.skipped(job_name, reason)
