"""Live object graph used as inspection roots in tests."""

import abc
import threading
from collections.abc import Iterator
from typing import ClassVar


class Engine:
    """Leaf value reached through a vehicle field."""

    horsepower: int
    serial: str

    def __init__(self, horsepower: int = 100, serial: str = "E-1") -> None:
        """Initialize the engine.

        :param horsepower: Engine power.
        :param serial: Serial number.
        """
        self.horsepower = horsepower
        self.serial = serial

    def __str__(self) -> str:
        """Return display text.

        :returns: Engine label.
        """
        return f"Engine {self.serial}"


class Vehicle:
    """Base level of a two-level hierarchy."""

    wheels: int
    engine: "Engine | None"

    def __init__(self, wheels: int, engine: Engine | None = None) -> None:
        """Initialize the vehicle.

        :param wheels: Wheel count.
        :param engine: Optional engine.
        """
        self.wheels = wheels
        self.engine = engine

    def describe(self) -> str:
        """Describe the vehicle.

        :returns: Description text.
        """
        return f"{self.wheels} wheels"

    def honk(self, times: int) -> str:
        """Honk repeatedly.

        :param times: Repetition count.
        :returns: Honk text.
        """
        return "honk " * times


class Car(Vehicle):
    """Derived level adding fields, a read-only property and a failing method."""

    doors: int
    passengers: list[str]

    def __init__(self, doors: int, engine: Engine | None = None) -> None:
        """Initialize the car.

        :param doors: Door count.
        :param engine: Optional engine.
        """
        super().__init__(4, engine)
        self.doors = doors
        self.passengers = []

    @property
    def label(self) -> str:
        """Return a label that cannot be assigned.

        :returns: Label text.
        """
        return f"car/{self.doors}"

    def fail(self) -> None:
        """Always raise.

        :raises RuntimeError: Always.
        """
        raise RuntimeError("car failure")

    def __str__(self) -> str:
        """Return display text.

        :returns: Car label.
        """
        return f"Car with {self.doors} doors"


class Formatter:
    """Declares the string overload."""

    def f(self, value: str) -> str:
        """Format a string.

        :param value: Input text.
        :returns: Tagged text.
        """
        return f"str:{value}"


class IntFormatter(Formatter):
    """Declares the integer overload on the derived level."""

    def f(self, value: int) -> str:
        """Format an integer.

        :param value: Input number.
        :returns: Tagged text.
        """
        return f"int:{value}"


class IntBaseFormatter:
    """Declares the integer overload on the base level."""

    def f(self, value: int) -> str:
        """Format an integer.

        :param value: Input number.
        :returns: Tagged text.
        """
        return f"int:{value}"


class StrFormatter(IntBaseFormatter):
    """Declares the string overload on the derived level."""

    def f(self, value: str) -> str:
        """Format a string.

        :param value: Input text.
        :returns: Tagged text.
        """
        return f"str:{value}"


class Counter:
    """Mutable counter with assorted method kinds."""

    value: int
    instances: ClassVar[int] = 0

    def __init__(self, value: int = 0) -> None:
        """Initialize the counter.

        :param value: Initial value.
        """
        self.value = value

    def increment(self, delta: int = 1) -> int:
        """Increment the counter.

        :param delta: Amount to add.
        :returns: Updated value.
        """
        self.value += delta
        return self.value

    def reset(self) -> None:
        """Reset the counter to zero."""
        self.value = 0

    @staticmethod
    def zero() -> int:
        """Return zero.

        :returns: Zero.
        """
        return 0

    @classmethod
    def named(cls) -> str:
        """Return the class name.

        :returns: Class name.
        """
        return cls.__name__


class Vault:
    """Holds a name-mangled field and a protected field."""

    __secret: str
    _hint: str

    def __init__(self) -> None:
        """Initialize the vault."""
        self.__secret = "hidden"
        self._hint = "look closer"


class Slotted:
    """Stores its fields in slots."""

    __slots__ = ("x", "y")

    def __init__(self, x: int, y: int) -> None:
        """Initialize the point.

        :param x: Horizontal coordinate.
        :param y: Vertical coordinate.
        """
        self.x = x
        self.y = y


class Outer:
    """Declares nested classes."""

    class Inner:
        """First nested class."""

    class Other:
        """Second nested class."""

    alias = int


class Countdown:
    """Iterable that is not a sequence."""

    start: int

    def __init__(self, start: int) -> None:
        """Initialize the countdown.

        :param start: First emitted value.
        """
        self.start = start

    def __iter__(self) -> Iterator[int]:
        """Count down to one.

        :yields: ``start`` down to ``1``.
        """
        current: int = self.start
        while current > 0:
            yield current
            current -= 1


class Shape(abc.ABC):
    """Abstract class that cannot be instantiated."""

    @abc.abstractmethod
    def area(self) -> float:
        """Return the area.

        :returns: Area.
        """


class ThreadBound:
    """Value that may only be touched from the thread that created it."""

    owner: int
    touched: bool

    def __init__(self) -> None:
        """Bind the value to the creating thread."""
        self.owner = threading.get_ident()
        self.touched = False

    def touch(self) -> str:
        """Mark the value as touched.

        :returns: Confirmation text.
        :raises RuntimeError: When called from a foreign thread.
        """
        if threading.get_ident() != self.owner:
            raise RuntimeError("touched from a foreign thread")
        self.touched = True
        return "touched"


class PlainBase:
    """Base level whose attributes are only assigned in ``__init__``."""

    def __init__(self) -> None:
        """Assign the base attribute."""
        self.base_value = 1


class PlainDerived(PlainBase):
    """Derived level assigning its attribute after the base initializer."""

    def __init__(self) -> None:
        """Assign the derived attribute."""
        super().__init__()
        self.derived_value = "two"
