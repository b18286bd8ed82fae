"""Tests for DependencyResolver."""

import pytest

from projection_engine.core.dependency_resolver import DependencyResolver
from projection_engine.errors import CyclicDependencyError, ValidationError
from projection_engine.models.driver import Driver


def _ids(drivers: list[Driver]) -> list[str]:
    return [d.id for d in drivers]


class TestDependencyResolver:
    """Tests for DependencyResolver.resolve()."""

    @pytest.fixture
    def resolver(self) -> DependencyResolver:
        return DependencyResolver()

    def test_dependencies_come_first(self, resolver: DependencyResolver) -> None:
        """Test that every dependency precedes its dependents."""
        drivers = [
            Driver("ebitda", "EBITDA", "Revenue - Costs", ["revenue", "costs"]),
            Driver("revenue", "Revenue", "Students * Tuition", ["students", "tuition"]),
            Driver("costs", "Costs", "Staff + Rent", ["staff", "rent"]),
            Driver("students", "Students"),
            Driver("tuition", "Tuition"),
            Driver("staff", "Staff"),
            Driver("rent", "Rent"),
        ]

        order = _ids(resolver.resolve(drivers))

        assert sorted(order) == sorted(_ids(drivers))
        for driver in drivers:
            for dependency in driver.dependencies:
                assert order.index(dependency) < order.index(driver.id)

    def test_deterministic_order(self, resolver: DependencyResolver) -> None:
        """Test that the order follows input and declaration order."""
        drivers = [
            Driver("revenue", "Revenue", "Students * Tuition", ["students", "tuition"]),
            Driver("students", "Students"),
            Driver("tuition", "Tuition"),
        ]

        first = _ids(resolver.resolve(drivers))
        second = _ids(resolver.resolve(list(drivers)))

        assert first == ["students", "tuition", "revenue"]
        assert first == second

    def test_independent_drivers_keep_input_order(
        self, resolver: DependencyResolver
    ) -> None:
        """Test that unrelated drivers are returned in input order."""
        drivers = [Driver("c", "C"), Driver("a", "A"), Driver("b", "B")]
        assert _ids(resolver.resolve(drivers)) == ["c", "a", "b"]

    def test_two_node_cycle(self, resolver: DependencyResolver) -> None:
        """Test that A -> B -> A is rejected."""
        drivers = [
            Driver("a", "A", "B + 1", ["b"]),
            Driver("b", "B", "A + 1", ["a"]),
        ]

        with pytest.raises(CyclicDependencyError) as exc_info:
            resolver.resolve(drivers)

        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_self_cycle(self, resolver: DependencyResolver) -> None:
        """Test that a driver listing itself as a dependency is rejected."""
        drivers = [Driver("a", "A", "A + 1", ["a"])]

        with pytest.raises(CyclicDependencyError, match="a -> a"):
            resolver.resolve(drivers)

    def test_cycle_reported_without_prefix(self, resolver: DependencyResolver) -> None:
        """Test that only the drivers on the cycle are reported."""
        drivers = [
            Driver("root", "Root", "X", ["x"]),
            Driver("x", "X", "Y", ["y"]),
            Driver("y", "Y", "Z", ["z"]),
            Driver("z", "Z", "X", ["x"]),
        ]

        with pytest.raises(CyclicDependencyError) as exc_info:
            resolver.resolve(drivers)

        assert exc_info.value.cycle == ["x", "y", "z", "x"]

    def test_unknown_dependency_is_not_an_error(
        self, resolver: DependencyResolver
    ) -> None:
        """Test that an unknown dependency id is left to the evaluator."""
        drivers = [Driver("a", "A", "Ghost * 2", ["ghost"])]
        assert _ids(resolver.resolve(drivers)) == ["a"]

    def test_duplicate_ids(self, resolver: DependencyResolver) -> None:
        """Test that duplicate ids are rejected."""
        drivers = [Driver("a", "A"), Driver("a", "Another A")]

        with pytest.raises(ValidationError, match="Duplicate driver id 'a'"):
            resolver.resolve(drivers)

    def test_long_chain(self, resolver: DependencyResolver) -> None:
        """Test that a chain longer than the recursion limit resolves."""
        n = 5000
        drivers = [
            Driver(f"d{i}", f"D{i}", f"D{i + 1} + 1", [f"d{i + 1}"]) for i in range(n)
        ]
        drivers.append(Driver(f"d{n}", f"D{n}"))

        order = _ids(resolver.resolve(drivers))

        assert order[0] == f"d{n}"
        assert order[-1] == "d0"
        assert len(order) == n + 1

    def test_empty(self, resolver: DependencyResolver) -> None:
        """Test that an empty catalog resolves to an empty order."""
        assert resolver.resolve([]) == []
