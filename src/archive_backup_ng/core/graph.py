"""Job dependency graph: closure, execution order and cycle reporting.

Jobs are stored as an arena indexed by catalogue position; edges are lists
of indices. An edge ``dep -> job`` means ``dep`` must finish before ``job``.
"""

import heapq
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..config import ConfigError, JobConfig
from ..errors import CycleError, DependencyError

logger = logging.getLogger(__name__)


@dataclass
class DependencyGraph:
    """Dependency graph over the jobs needed for a request.

    Attributes:
        names: Job names by catalogue index (the whole catalogue)
        nodes: Catalogue indices of the jobs in the closure, ascending
        dependents: index -> indices of jobs that depend on it
        dependencies: index -> indices of jobs it depends on
    """

    names: list[str]
    nodes: list[int] = field(default_factory=list)
    dependents: dict[int, list[int]] = field(default_factory=dict)
    dependencies: dict[int, list[int]] = field(default_factory=dict)

    def order(self) -> list[str]:
        """Topological order (Kahn), ties broken by catalogue order.

        Raises:
            CycleError: If the jobs contain a dependency cycle
        """
        indegree = {n: len(self.dependencies[n]) for n in self.nodes}
        ready = [n for n in self.nodes if indegree[n] == 0]
        heapq.heapify(ready)

        ordered: list[int] = []
        while ready:
            node = heapq.heappop(ready)
            ordered.append(node)
            for child in self.dependents[node]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, child)

        if len(ordered) != len(self.nodes):
            remaining = {n for n in self.nodes if indegree[n] > 0}
            raise CycleError([self.names[i] for i in self._find_cycle(remaining)])

        return [self.names[i] for i in ordered]

    def _find_cycle(self, remaining: set[int]) -> list[int]:
        """Return one cycle among ``remaining`` as [a, b, ..., a].

        Every remaining node still has an unprocessed dependency, so walking
        dependency edges inside ``remaining`` must eventually revisit a node.
        """
        node = min(remaining)
        path: list[int] = []
        seen: dict[int, int] = {}
        while node not in seen:
            seen[node] = len(path)
            path.append(node)
            node = min(d for d in self.dependencies[node] if d in remaining)
        cycle = path[seen[node]:]
        return cycle + [cycle[0]]

    def dependencies_of(self, name: str) -> list[str]:
        index = self.names.index(name)
        return [self.names[i] for i in self.dependencies.get(index, [])]


def build_graph(catalogue: Sequence[JobConfig], requested: Iterable[str] = ()) -> DependencyGraph:
    """Build the dependency graph of the jobs needed for ``requested``.

    Args:
        catalogue: All configured jobs, in configuration order
        requested: Job names to run; empty means all enabled jobs

    Returns:
        DependencyGraph restricted to the requested jobs and their dependencies

    Raises:
        ConfigError: If a requested job does not exist
        DependencyError: If a job depends on a job that does not exist
    """
    names = [job.name for job in catalogue]
    index = {name: i for i, name in enumerate(names)}

    requested = list(requested)
    if requested:
        for name in requested:
            if name not in index:
                raise ConfigError(f"Unknown job requested: '{name}'")
        start = [index[name] for name in requested]
    else:
        start = [i for i, job in enumerate(catalogue) if job.enabled]

    graph = DependencyGraph(names=names)
    closure: set[int] = set()
    queue = deque(start)
    while queue:
        node = queue.popleft()
        if node in closure:
            continue
        closure.add(node)
        job = catalogue[node]
        deps = []
        for dep in job.depends_on:
            if dep not in index:
                raise DependencyError(job.name, dep)
            if index[dep] not in deps:
                deps.append(index[dep])
        graph.dependencies[node] = deps
        queue.extend(deps)

    graph.nodes = sorted(closure)
    graph.dependents = {n: [] for n in graph.nodes}
    for node in graph.nodes:
        for dep in graph.dependencies[node]:
            graph.dependents[dep].append(node)

    pulled_in = sorted(closure - set(start))
    for node in pulled_in:
        logger.debug("Job %s added as a dependency", names[node])
        if not catalogue[node].enabled:
            logger.warning("Disabled job %s is required as a dependency", names[node])

    return graph


def execution_order(catalogue: Sequence[JobConfig], requested: Iterable[str] = ()) -> list[str]:
    """Return a valid execution order for ``requested`` and its dependencies."""
    return build_graph(catalogue, requested).order()


def check_staging_conflicts(jobs: Iterable[JobConfig]) -> None:
    """Reject jobs whose archives would be indistinguishable in one staging dir.

    Raises:
        ConfigError: If two jobs share staging directory and archive base name
    """
    owners: dict[tuple[str, str], str] = {}
    for job in jobs:
        key = (job.staging_dir.rstrip("/"), job.archive_name)
        other = owners.get(key)
        if other is not None and other != job.name:
            raise ConfigError(
                f"Jobs '{other}' and '{job.name}' write archives named "
                f"'{job.archive_name}' to the same staging directory {job.staging_dir}"
            )
        owners[key] = job.name
