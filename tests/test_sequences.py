"""Tests for indexed access over arrays and iterables."""

import array

import pytest

from heapscope.sequences import describe_item
from heapscope.sequences import enumerate_items
from heapscope.sequences import is_array
from heapscope.sequences import is_sequence
from heapscope.sequences import item_at
from tests.fixtures.object_graph import Countdown
from tests.fixtures.object_graph import Engine


def test_sequence_classification() -> None:
    """Arrays and iterables enumerate; text and null do not."""
    assert is_sequence([1, 2]) is True
    assert is_sequence((1,)) is True
    assert is_sequence({"a": 1}) is True
    assert is_sequence(Countdown(2)) is True
    assert is_sequence(array.array("i", [1])) is True
    assert is_sequence("text") is False
    assert is_sequence(b"bytes") is False
    assert is_sequence(None) is False
    assert is_sequence(Engine()) is False

    assert is_array([1]) is True
    assert is_array(Countdown(1)) is False


def test_enumerate_array_elements() -> None:
    """Array elements render as ``text:typeName`` in index order."""
    rendered: list[str] = enumerate_items(["a", 2, None, Engine(serial="S")])
    assert rendered == ["a:str", "2:int", "null:null", "Engine S:tests.fixtures.object_graph.Engine"]


def test_enumerate_generic_iterable() -> None:
    """Generic iterables are consumed in one forward pass."""
    rendered: list[str] = enumerate_items(Countdown(3))
    assert rendered == ["3:int", "2:int", "1:int"]
    assert enumerate_items("text") == []


def test_item_at_matches_enumeration() -> None:
    """``item_at`` returns the element rendered at the same position."""
    values: list[object] = ["zero", 1, 2.5, "three", Engine()]
    rendered: list[str] = enumerate_items(values)

    fourth: object = item_at(values, 4)
    assert fourth is values[4]
    assert describe_item(fourth) == rendered[4]

    countdown_item: object = item_at(Countdown(5), 1)
    assert countdown_item == 4


def test_item_at_rejects_bad_positions() -> None:
    """Out-of-range positions and non-sequences raise."""
    with pytest.raises(IndexError):
        item_at([1, 2], 2)
    with pytest.raises(IndexError):
        item_at(Countdown(2), 5)
    with pytest.raises(IndexError):
        item_at([1, 2], -1)
    with pytest.raises(TypeError):
        item_at(Engine(), 0)
