"""Indexed access over arrays and generic iterables."""

import array
import itertools
import logging
from collections.abc import Iterable
from collections.abc import Iterator
from collections.abc import Sequence

from heapscope.access import render_text
from heapscope.introspection import SEPARATOR
from heapscope.introspection import value_type_name

logger = logging.getLogger(__name__)

_SCALAR_TYPES: tuple[type, ...] = (str, bytes, bytearray)


def is_array(value: object) -> bool:
    """Report whether ``value`` supports direct indexed access.

    :param value: Candidate value.
    :returns: ``True`` for sequences, ``array.array`` and ``memoryview``.
    """
    if isinstance(value, _SCALAR_TYPES) is True:
        return False
    return isinstance(value, (Sequence, array.array, memoryview))


def is_sequence(value: object) -> bool:
    """Report whether ``value`` can be enumerated.

    :param value: Candidate value.
    :returns: ``True`` for arrays and other iterables, ``False`` for text and ``None``.
    """
    if value is None or isinstance(value, _SCALAR_TYPES) is True:
        return False
    if is_array(value) is True:
        return True
    return isinstance(value, Iterable)


def describe_item(item: object) -> str:
    """Render one element as ``text:typeName``.

    :param item: Element value.
    :returns: Wire text for the element.
    """
    return f"{render_text(item)}{SEPARATOR}{value_type_name(item)}"


def enumerate_items(value: object) -> list[str]:
    """Render every element of ``value`` in order.

    Arrays are read by index; other iterables are consumed in one forward pass.

    :param value: Array or iterable.
    :returns: One ``text:typeName`` entry per element, empty for non-sequences.
    """
    if is_sequence(value) is False:
        return []
    if is_array(value) is True:
        return [describe_item(value[index]) for index in range(len(value))]  # type: ignore[index,arg-type]
    return [describe_item(item) for item in value]  # type: ignore[attr-defined]


def item_at(value: object, index: int) -> object:
    """Return the element at ``index``.

    Arrays are indexed directly. Other iterables are driven through a fresh
    iterator, skipping the first ``index`` elements.

    :param value: Array or iterable.
    :param index: Zero-based element position.
    :returns: Element value.
    :raises IndexError: If ``index`` is negative or past the end.
    :raises TypeError: If ``value`` is not a sequence.
    """
    if is_sequence(value) is False:
        raise TypeError(f"{value_type_name(value)} is not a sequence")
    if index < 0:
        raise IndexError(f"Negative index: {index}")
    if is_array(value) is True:
        return value[index]  # type: ignore[index]

    iterator: Iterator[object] = iter(value)  # type: ignore[call-overload]
    remaining: Iterator[object] = itertools.islice(iterator, index, None)
    sentinel: object = object()
    item: object = next(remaining, sentinel)
    if item is sentinel:
        raise IndexError(f"Index {index} past the end of {value_type_name(value)}")
    return item
