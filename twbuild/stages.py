"""
stages.py

Responsibility: Run named build stages in dependency order.

A stage declares two kinds of edges:
- `requires`: hard dependencies. They are pulled in when running with
  `with_dependencies=True` and always ordered before the stage.
- `after`: ordering only. If both stages are selected, the other one runs
  first; it is never pulled in (e.g. cleanup before anything writes output).

`plan()` turns the selected stages into waves: every stage in a wave only
depends on stages of earlier waves, so the stages of one wave may run
concurrently. The first failing stage aborts the run; later waves never start
and nothing is retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class StageGraphError(ValueError):
    pass


class StageError(RuntimeError):
    """A stage failed; `stage` names it and `cause` is the underlying error."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass(frozen=True)
class Stage:
    name: str
    action: Callable[[], Any]
    requires: tuple[str, ...] = ()
    after: tuple[str, ...] = ()
    description: str = ""

    @property
    def predecessors(self) -> tuple[str, ...]:
        return self.requires + self.after


class StageGraph:
    def __init__(self, stages: Iterable[Stage] = ()) -> None:
        self._stages: dict[str, Stage] = {}
        for stage in stages:
            self.add(stage)

    def add(self, stage: Stage) -> None:
        if stage.name in self._stages:
            raise StageGraphError(f"Duplicate stage name: {stage.name}")
        self._stages[stage.name] = stage

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def get(self, name: str) -> Stage:
        try:
            return self._stages[name]
        except KeyError:
            raise StageGraphError(f"Unknown stage: {name}") from None

    def stages(self) -> list[Stage]:
        return list(self._stages.values())

    def validate(self) -> None:
        """Reject edges to unknown stages and cycles (Kahn's algorithm)."""
        for stage in self._stages.values():
            for dep in stage.predecessors:
                if dep not in self._stages:
                    raise StageGraphError(f"Stage '{stage.name}' depends on unknown stage '{dep}'")

        in_degree = {name: len(set(stage.predecessors)) for name, stage in self._stages.items()}
        dependents: dict[str, list[str]] = {name: [] for name in self._stages}
        for stage in self._stages.values():
            for dep in set(stage.predecessors):
                dependents[dep].append(stage.name)

        queue = sorted(name for name, degree in in_degree.items() if degree == 0)
        visited = 0
        while queue:
            node = queue.pop(0)
            visited += 1
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
            queue.sort()

        if visited != len(self._stages):
            cyclic = sorted(name for name, degree in in_degree.items() if degree > 0)
            raise StageGraphError(f"Circular stage dependency among: {', '.join(cyclic)}")

    def _ancestors(self, name: str) -> set[str]:
        seen: set[str] = set()
        stack = list(self._stages[name].predecessors)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._stages[current].predecessors)
        return seen

    def _select(self, targets: Iterable[str], with_dependencies: bool) -> set[str]:
        selected: set[str] = set()
        stack = list(targets)
        while stack:
            name = stack.pop()
            if name in selected:
                continue
            self.get(name)
            selected.add(name)
            if with_dependencies:
                stack.extend(self._stages[name].requires)
        return selected

    def plan(self, targets: Iterable[str], *, with_dependencies: bool = False) -> list[list[str]]:
        """
        Return execution waves for `targets`.

        Ordering between selected stages follows transitive edges, including
        paths through stages that are not selected.
        """
        self.validate()
        selected = self._select(targets, with_dependencies)
        before = {name: self._ancestors(name) & selected for name in selected}

        waves: list[list[str]] = []
        done: set[str] = set()
        remaining = set(selected)
        while remaining:
            wave = sorted(name for name in remaining if before[name] <= done)
            waves.append(wave)
            done.update(wave)
            remaining.difference_update(wave)
        return waves

    def _execute(self, name: str) -> None:
        stage = self._stages[name]
        logger.info("Starting '%s'", name)
        started = time.perf_counter()
        try:
            stage.action()
        except Exception as e:
            logger.error("'%s' failed after %.2fs: %s", name, time.perf_counter() - started, e)
            raise StageError(name, e) from e
        logger.info("Finished '%s' after %.2fs", name, time.perf_counter() - started)

    def run(self, targets: Iterable[str], *, with_dependencies: bool = False, jobs: int = 1) -> list[str]:
        """
        Run the selected stages; returns the names in the order they completed.

        Raises StageError for the first failing stage.
        """
        waves = self.plan(targets, with_dependencies=with_dependencies)
        completed: list[str] = []
        for wave in waves:
            if jobs > 1 and len(wave) > 1:
                with ThreadPoolExecutor(max_workers=min(jobs, len(wave))) as pool:
                    futures = [(name, pool.submit(self._execute, name)) for name in wave]
                for name, future in futures:
                    error = future.exception()
                    if error is not None:
                        raise error
                    completed.append(name)
            else:
                for name in wave:
                    self._execute(name)
                    completed.append(name)
        return completed
