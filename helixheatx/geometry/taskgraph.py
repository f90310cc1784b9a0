"""
HelixHeatX - Build Task Graph

The composition pipeline is a directed acyclic graph of named nodes. Each
node is a function of its dependencies' results; a node only runs once
all of its dependencies are done, so the ordering constraints of the
boolean sequence are explicit and checkable.

Nodes run in a deterministic topological order (declaration order breaks
ties). With workers > 1, ready nodes are submitted to a thread pool;
numpy and scipy release the GIL for the heavy array work.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import TaskGraphError
from ..runtime import CancelToken, check_cancel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskNode:
    name: str
    fn: Callable[..., Any]
    deps: Tuple[str, ...]


class TaskGraph:
    """Named build steps with declared dependencies."""

    def __init__(self):
        self._nodes: Dict[str, TaskNode] = {}

    def add(self, name: str, fn: Callable[..., Any], deps: Sequence[str] = ()) -> str:
        """Register a node; fn receives the dependency results positionally."""
        if name in self._nodes:
            raise TaskGraphError(f"duplicate node '{name}'")
        self._nodes[name] = TaskNode(name, fn, tuple(deps))
        return name

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def names(self) -> List[str]:
        return list(self._nodes)

    def deps(self, name: str) -> Tuple[str, ...]:
        return self._nodes[name].deps

    def validate(self):
        for node in self._nodes.values():
            for dep in node.deps:
                if dep not in self._nodes:
                    raise TaskGraphError(f"node '{node.name}' depends on unknown node '{dep}'")

    def order(self) -> List[str]:
        """Topological order, ties broken by declaration order."""
        self.validate()
        remaining = {name: set(node.deps) for name, node in self._nodes.items()}
        done: List[str] = []
        while remaining:
            ready = [name for name, deps in remaining.items() if not deps]
            if not ready:
                raise TaskGraphError(f"dependency cycle among {sorted(remaining)}")
            for name in ready:
                del remaining[name]
                done.append(name)
            for deps in remaining.values():
                deps.difference_update(ready)
        return done

    def ancestors(self, name: str) -> set:
        """All nodes that must finish before `name` can run."""
        seen = set()
        stack = list(self._nodes[name].deps)
        while stack:
            dep = stack.pop()
            if dep not in seen:
                seen.add(dep)
                stack.extend(self._nodes[dep].deps)
        return seen

    def _execute(self, name: str, results: Dict[str, Any], cancel: Optional[CancelToken]):
        check_cancel(cancel)
        node = self._nodes[name]
        t0 = time.time()
        logger.debug("stage %s started", name)
        value = node.fn(*[results[d] for d in node.deps])
        logger.info("stage %-24s %6.2fs", name, time.time() - t0)
        return value

    def run(self, workers: int = 1, cancel: Optional[CancelToken] = None,
            on_stage: Optional[Callable[[str, Any], None]] = None) -> Dict[str, Any]:
        """Evaluate every node; returns results by node name."""
        order = self.order()
        results: Dict[str, Any] = {}

        if workers <= 1:
            for name in order:
                results[name] = self._execute(name, results, cancel)
                if on_stage is not None:
                    on_stage(name, results[name])
            return results

        pending = list(order)
        running = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            try:
                while pending or running:
                    for name in list(pending):
                        if len(running) >= workers:
                            break
                        if all(d in results for d in self._nodes[name].deps):
                            pending.remove(name)
                            running[executor.submit(self._execute, name, dict(results), cancel)] = name
                    finished, _ = wait(running, return_when=FIRST_COMPLETED)
                    for future in finished:
                        name = running.pop(future)
                        results[name] = future.result()
                        if on_stage is not None:
                            on_stage(name, results[name])
            except BaseException:
                if cancel is not None:
                    cancel.cancel("build aborted")
                for future in running:
                    future.cancel()
                raise
        return results
