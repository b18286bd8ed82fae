"""Dependency graph resolver producing a deterministic evaluation order."""

import logging
from typing import Iterable, Iterator

from projection_engine.errors import CyclicDependencyError, ValidationError
from projection_engine.models.driver import Driver

logger = logging.getLogger(__name__)

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


class DependencyResolver:
    """
    Orders drivers so that every dependency precedes its dependents.

    Depth-first traversal with three-state marking on an explicit stack, so
    stack depth does not grow with the length of a dependency chain. Roots
    are taken in input order and dependencies in declared order, which makes
    the result reproducible for identical input.

    A dependency on an id that is not in the catalog is not an error here;
    the evaluator reports it as a missing value for each affected year.

    Example:
        >>> drivers = [
        ...     Driver("revenue", "Revenue", "Students * Tuition", ["students", "tuition"]),
        ...     Driver("students", "Students"),
        ...     Driver("tuition", "Tuition"),
        ... ]
        >>> [d.id for d in DependencyResolver().resolve(drivers)]
        ['students', 'tuition', 'revenue']
    """

    def resolve(self, drivers: Iterable[Driver]) -> list[Driver]:
        """
        Topologically sort ``drivers``.

        Args:
            drivers: Full driver catalog of a scenario.

        Returns:
            Drivers ordered dependencies-first.

        Raises:
            CyclicDependencyError: If any driver (transitively) depends on
                itself. No partial order is returned.
            ValidationError: If two drivers share an id.
        """
        drivers = list(drivers)
        by_id = self._index(drivers)
        state = {driver.id: _UNVISITED for driver in drivers}
        order: list[Driver] = []

        for root in drivers:
            if state[root.id] != _UNVISITED:
                continue

            state[root.id] = _IN_PROGRESS
            stack: list[tuple[str, Iterator[str]]] = [
                (root.id, iter(root.dependencies))
            ]

            while stack:
                node_id, children = stack[-1]
                for child_id in children:
                    if child_id not in by_id:
                        logger.debug(
                            "Driver '%s' depends on unknown driver '%s'",
                            node_id,
                            child_id,
                        )
                        continue
                    if state[child_id] == _IN_PROGRESS:
                        path = [frame[0] for frame in stack]
                        cycle = path[path.index(child_id):] + [child_id]
                        raise CyclicDependencyError(cycle)
                    if state[child_id] == _UNVISITED:
                        state[child_id] = _IN_PROGRESS
                        stack.append((child_id, iter(by_id[child_id].dependencies)))
                        break
                else:
                    # All children done
                    stack.pop()
                    state[node_id] = _DONE
                    order.append(by_id[node_id])

        logger.debug("Resolved evaluation order: %s", [d.id for d in order])
        return order

    @staticmethod
    def _index(drivers: list[Driver]) -> dict[str, Driver]:
        by_id: dict[str, Driver] = {}
        duplicates = []
        for driver in drivers:
            if driver.id in by_id:
                duplicates.append(driver.id)
            by_id[driver.id] = driver
        if duplicates:
            raise ValidationError(
                [f"Duplicate driver id '{driver_id}'" for driver_id in duplicates]
            )
        return by_id
