"""Tests for path resolution and lenient field access."""

from heapscope.access import PathStep
from heapscope.access import browse_path
from heapscope.access import render_text
from heapscope.access import resolve_path
from heapscope.access import write_path
from heapscope.registry import HandleRegistry
from tests.fixtures.object_graph import Car
from tests.fixtures.object_graph import Engine
from tests.fixtures.object_graph import Slotted

DOORS: int = 0
LABEL: int = 2
ENGINE: int = 4
SERIAL: int = 1


class _Unprintable:
    """Value whose ``__str__`` raises."""

    def __str__(self) -> str:
        """Always raise.

        :raises ValueError: Always.
        """
        raise ValueError("no text")


def _registry_with(value: object) -> HandleRegistry:
    """Build a registry holding one root.

    :param value: Root value.
    :returns: Registry whose handle ``0`` is ``value``.
    """
    registry: HandleRegistry = HandleRegistry()
    registry.push(value)
    return registry


def test_empty_path_resolves_to_root() -> None:
    """An empty path addresses the root itself."""
    car: Car = Car(2)
    registry: HandleRegistry = _registry_with(car)

    resolved: object = resolve_path(registry, 0, [])
    assert resolved is car


def test_path_walks_nested_fields() -> None:
    """Each selector indexes the field list of the value reached so far."""
    engine: Engine = Engine(serial="E-42")
    registry: HandleRegistry = _registry_with(Car(2, engine))

    reached_engine: object = resolve_path(registry, 0, [ENGINE])
    reached_serial: object = resolve_path(registry, 0, [ENGINE, SERIAL])
    assert reached_engine is engine
    assert reached_serial == "E-42"


def test_path_through_null_resolves_to_null() -> None:
    """Any selector after a null field yields null."""
    registry: HandleRegistry = _registry_with(Car(2))

    resolved: object = resolve_path(registry, 0, [ENGINE, 5])
    steps: list[PathStep] = browse_path(registry, 0, [ENGINE, 5])
    assert resolved is None
    assert len(steps) == 1


def test_out_of_range_selector_resolves_to_null() -> None:
    """Selectors that address no field never raise."""
    registry: HandleRegistry = _registry_with(Car(2))

    assert resolve_path(registry, 0, [99]) is None
    assert resolve_path(registry, 0, [-3]) is None


def test_property_and_slot_reads() -> None:
    """Properties and slots read through their descriptors."""
    car_registry: HandleRegistry = _registry_with(Car(3))
    point_registry: HandleRegistry = _registry_with(Slotted(5, 6))

    assert resolve_path(car_registry, 0, [LABEL]) == "car/3"
    assert resolve_path(point_registry, 0, [1]) == 6


def test_write_assigns_last_field() -> None:
    """The last selector names the written field on the reached owner."""
    engine: Engine = Engine(horsepower=90)
    car: Car = Car(2, engine)
    registry: HandleRegistry = _registry_with(car)

    write_path(registry, 0, [DOORS], 5)
    write_path(registry, 0, [ENGINE, 0], 250)
    assert car.doors == 5
    assert engine.horsepower == 250


def test_rejected_writes_are_absorbed() -> None:
    """Read-only fields, bad paths and empty paths leave values untouched."""
    car: Car = Car(2)
    registry: HandleRegistry = _registry_with(car)

    write_path(registry, 0, [LABEL], "forced")
    write_path(registry, 0, [ENGINE, 0], 1)
    write_path(registry, 0, [42], 1)
    write_path(registry, 0, [], 1)
    assert car.label == "car/2"
    assert car.engine is None
    assert car.doors == 2


def test_write_to_slot() -> None:
    """Slots accept writes through their descriptor."""
    point: Slotted = Slotted(1, 2)
    registry: HandleRegistry = _registry_with(point)

    write_path(registry, 0, [0], 9)
    assert point.x == 9


def test_render_text() -> None:
    """Rendering handles null and values whose ``__str__`` fails."""
    assert render_text(None) == "null"
    assert render_text(Engine(serial="Z")) == "Engine Z"
    placeholder: str = render_text(_Unprintable())
    assert placeholder.startswith("<unprintable ") is True
    assert placeholder.endswith("._Unprintable>") is True
