"""Path resolution and field access that never raise."""

import logging
from collections.abc import Sequence

from heapscope.introspection import MemberDescriptor
from heapscope.introspection import list_fields
from heapscope.introspection import type_name
from heapscope.registry import HandleRegistry

logger = logging.getLogger(__name__)

PathStep = tuple[MemberDescriptor, object]


def render_text(value: object) -> str:
    """Render ``value`` as display text.

    :param value: Any value.
    :returns: ``str(value)``, ``"null"`` for ``None``, or a placeholder when ``__str__`` fails.
    """
    if value is None:
        return "null"
    try:
        return str(value)
    except Exception:
        logger.debug("__str__ failed for %s", type_name(type(value)), exc_info=True)
        return f"<unprintable {type_name(type(value))}>"


def _binds_through_descriptor(descriptor: MemberDescriptor) -> bool:
    """Report whether a field is read through its class-level descriptor.

    :param descriptor: Field descriptor.
    :returns: ``True`` for properties, slots and other descriptor objects.
    """
    qualifiers: tuple[str, ...] = descriptor.qualifiers
    return "property" in qualifiers or "slot" in qualifiers


def read_field(descriptor: MemberDescriptor, target: object) -> object:
    """Read one field from ``target``.

    :param descriptor: Field descriptor from ``list_fields``.
    :param target: Object owning the field.
    :returns: Field value, or ``None`` when the read fails for any reason.
    """
    try:
        if _binds_through_descriptor(descriptor) is True and descriptor.attribute is not None:
            return descriptor.attribute.__get__(target, type(target))  # type: ignore[attr-defined]
        return getattr(target, descriptor.name)
    except Exception:
        logger.debug("Read of %r on %s failed", descriptor, type_name(type(target)), exc_info=True)
        return None


def write_field(descriptor: MemberDescriptor, target: object, value: object) -> None:
    """Write one field on ``target``, absorbing every failure.

    :param descriptor: Field descriptor from ``list_fields``.
    :param target: Object owning the field.
    :param value: New field value.
    """
    try:
        if _binds_through_descriptor(descriptor) is True and descriptor.attribute is not None:
            descriptor.attribute.__set__(target, value)  # type: ignore[attr-defined]
            return
        if "class" in descriptor.qualifiers:
            setattr(descriptor.declaring_type, descriptor.name, value)
            return
        setattr(target, descriptor.name, value)
    except Exception:
        logger.debug("Write of %r on %s was rejected", descriptor, type_name(type(target)), exc_info=True)


def _select_field(value: object, selector: int) -> MemberDescriptor | None:
    """Pick the field addressed by ``selector`` on ``value``.

    :param value: Non-null current value.
    :param selector: Index into ``list_fields(value)``.
    :returns: Field descriptor, or ``None`` when the selector is out of range.
    """
    fields: list[MemberDescriptor] = list_fields(value)
    if selector < 0 or selector >= len(fields):
        logger.debug("Selector %d out of range for %s", selector, type_name(type(value)))
        return None
    return fields[selector]


def browse_path(registry: HandleRegistry, handle: int, path: Sequence[int]) -> list[PathStep]:
    """Walk ``path`` from a root and record each visited field.

    The walk stops early when the current value is ``None`` or a selector
    does not address a field, so the result may be shorter than ``path``.

    :param registry: Root registry.
    :param handle: Root handle.
    :param path: Field selectors applied left to right.
    :returns: ``(descriptor, owner)`` pairs for each completed step.
    """
    steps: list[PathStep] = []
    current: object = registry.resolve(handle)
    for selector in path:
        if current is None:
            break
        descriptor: MemberDescriptor | None = _select_field(current, selector)
        if descriptor is None:
            break
        steps.append((descriptor, current))
        current = read_field(descriptor, current)
    return steps


def resolve_path(registry: HandleRegistry, handle: int, path: Sequence[int]) -> object:
    """Resolve the value reached by walking ``path`` from a root.

    :param registry: Root registry.
    :param handle: Root handle.
    :param path: Field selectors applied left to right.
    :returns: Reached value, or ``None`` when any step hits ``None``.
    """
    current: object = registry.resolve(handle)
    for selector in path:
        if current is None:
            return None
        descriptor: MemberDescriptor | None = _select_field(current, selector)
        if descriptor is None:
            return None
        current = read_field(descriptor, current)
    return current


def write_path(registry: HandleRegistry, handle: int, path: Sequence[int], value: object) -> None:
    """Assign ``value`` to the field addressed by the last step of ``path``.

    An empty path or a walk that stops early leaves everything untouched.

    :param registry: Root registry.
    :param handle: Root handle.
    :param path: Field selectors, the last one naming the written field.
    :param value: New field value.
    """
    if len(path) == 0:
        return
    steps: list[PathStep] = browse_path(registry, handle, path)
    if len(steps) != len(path):
        logger.debug("Write path %s stopped after %d steps", list(path), len(steps))
        return
    descriptor, owner = steps[-1]
    write_field(descriptor, owner, value)
