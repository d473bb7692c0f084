"""Method and constructor dispatch with overload search and thread-affinity fallback."""

import asyncio
import functools
import inspect
import logging
import types
import typing
from collections.abc import Callable
from collections.abc import Sequence
from concurrent.futures import Executor
from typing import Any
from typing import Protocol

from heapscope.errors import ArgumentShapeError
from heapscope.introspection import MemberDescriptor
from heapscope.introspection import list_methods
from heapscope.introspection import type_name
from heapscope.registry import NO_OBJECT
from heapscope.registry import HandleRegistry

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND: int = -2
CONSTRUCT_INSTANTIATION_FAILED: int = -1
CONSTRUCT_SHAPE_MISMATCH: int = -2
CONSTRUCT_FAULT: int = -3


class ExecutionContext(Protocol):
    """Execution context that owns some target values."""

    def submit(self, call: Callable[[], object]) -> None:
        """Schedule ``call`` without waiting for it.

        :param call: Zero-argument callable.
        """


ContextResolver = Callable[[object], ExecutionContext | None]


class EventLoopContext:
    """Run calls on the thread driving an asyncio event loop."""

    _loop: asyncio.AbstractEventLoop

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize the context.

        :param loop: Loop that owns the affine values.
        """
        self._loop = loop

    def submit(self, call: Callable[[], object]) -> None:
        """Schedule ``call`` on the loop thread.

        :param call: Zero-argument callable.
        """
        self._loop.call_soon_threadsafe(call)


class ExecutorContext:
    """Run calls on an executor, discarding the resulting future."""

    _executor: Executor

    def __init__(self, executor: Executor) -> None:
        """Initialize the context.

        :param executor: Executor that owns the affine values.
        """
        self._executor = executor

    def submit(self, call: Callable[[], object]) -> None:
        """Schedule ``call`` on the executor.

        :param call: Zero-argument callable.
        """
        self._executor.submit(call)


class AffinityTable:
    """Map owner classes to the execution context their instances require."""

    _bindings: list[tuple[type, ExecutionContext]]

    def __init__(self) -> None:
        """Initialize an empty table."""
        self._bindings = []

    def bind(self, owner_type: type, context: ExecutionContext) -> None:
        """Require ``context`` for instances of ``owner_type``.

        :param owner_type: Class whose instances are affine.
        :param context: Owning execution context.
        :raises TypeError: If ``owner_type`` is not a class.
        """
        if isinstance(owner_type, type) is False:
            raise TypeError("owner_type must be a class")
        self._bindings.append((owner_type, context))

    def __call__(self, target: object) -> ExecutionContext | None:
        """Return the first bound context whose class ``target`` is an instance of.

        :param target: Invocation target.
        :returns: Owning context, or ``None``.
        """
        for owner_type, context in self._bindings:
            if isinstance(target, owner_type) is True:
                return context
        return None


def _value_fits(value: object, annotation: object) -> bool:
    """Check one argument against one parameter annotation.

    :param value: Supplied argument.
    :param annotation: Resolved or raw annotation.
    :returns: ``True`` unless the annotation names classes ``value`` is not an instance of.
    """
    if value is None:
        return True
    if annotation is inspect.Parameter.empty or annotation is Any:
        return True
    if isinstance(annotation, str) is True:
        return True

    origin: object = typing.get_origin(annotation)
    if origin is None and isinstance(annotation, type) is True:
        if annotation is float and isinstance(value, int) is True:
            return True
        if annotation is complex and isinstance(value, (int, float)) is True:
            return True
        return isinstance(value, annotation)

    arguments: tuple[object, ...] = typing.get_args(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return any(_value_fits(value, argument) for argument in arguments)
    if origin is typing.Literal:
        return value in arguments
    if origin is typing.Annotated or origin is typing.ClassVar:
        if len(arguments) == 0:
            return True
        return _value_fits(value, arguments[0])
    if isinstance(origin, type) is True:
        return isinstance(value, origin)
    return True


def arguments_fit(descriptor: MemberDescriptor, args: Sequence[object]) -> bool:
    """Report whether ``args`` fit the parameters of a callable member.

    :param descriptor: Method or constructor descriptor.
    :param args: Positional arguments.
    :returns: ``True`` when binding and every annotated class check succeed.
    """
    if descriptor.signature is None:
        return True

    try:
        signature: inspect.Signature = inspect.Signature(descriptor.parameters)
        bound: inspect.BoundArguments = signature.bind(*args)
    except (TypeError, ValueError):
        return False

    for name, value in bound.arguments.items():
        parameter: inspect.Parameter = signature.parameters[name]
        annotation: object = descriptor.hints.get(name, parameter.annotation)
        if parameter.kind == inspect.Parameter.VAR_POSITIONAL:
            for item in value:
                if _value_fits(item, annotation) is False:
                    return False
            continue
        if parameter.kind == inspect.Parameter.VAR_KEYWORD:
            continue
        if _value_fits(value, annotation) is False:
            return False
    return True


def _bind_member(descriptor: MemberDescriptor, target: object) -> Callable[..., object]:
    """Bind the declaring level's own implementation to ``target``.

    :param descriptor: Method descriptor.
    :param target: Invocation target.
    :returns: Callable accepting the caller-visible arguments.
    """
    attribute: object = descriptor.attribute
    binder: object = getattr(type(attribute), "__get__", None)
    if binder is not None:
        return attribute.__get__(target, type(target))  # type: ignore[attr-defined,no-any-return]
    return attribute  # type: ignore[return-value]


def _run_detached(call: Callable[..., object], args: tuple[object, ...], label: str) -> None:
    """Run a resubmitted call inside its owning context.

    :param call: Bound callable.
    :param args: Positional arguments.
    :param label: Member label used in log records.
    """
    try:
        call(*args)
    except (Exception, SystemExit):
        logger.warning("Resubmitted call %s failed in its owning context", label, exc_info=True)


def _implicit_constructor(value_type: type) -> MemberDescriptor:
    """Describe calling ``value_type`` itself.

    :param value_type: Class object.
    :returns: Constructor descriptor for ``value_type(...)``.
    """
    try:
        signature: inspect.Signature | None = inspect.signature(value_type)
    except (TypeError, ValueError):
        signature = None

    hints: dict[str, object] = {}
    for level in value_type.__mro__:
        initializer: object = level.__dict__.get("__init__")
        if initializer is None:
            continue
        try:
            hints = typing.get_type_hints(initializer)
        except Exception:
            hints = {}
        break

    parameters: list[inspect.Parameter] = []
    if signature is not None:
        parameters = list(signature.parameters.values())
    return MemberDescriptor(
        "constructor",
        value_type.__name__,
        value_type,
        ("public",),
        type_name(value_type),
        value_type,
        signature,
        parameters,
        hints,
    )


class Invoker:
    """Invoke members of live values and register what they return."""

    _registry: HandleRegistry
    _context_resolver: ContextResolver | None

    def __init__(self, registry: HandleRegistry, context_resolver: ContextResolver | None = None) -> None:
        """Initialize the invoker.

        :param registry: Registry receiving invocation results.
        :param context_resolver: Optional lookup of a target's owning execution context.
        """
        self._registry = registry
        self._context_resolver = context_resolver

    def _owning_context(self, target: object) -> ExecutionContext | None:
        """Look up the execution context that owns ``target``.

        :param target: Invocation target.
        :returns: Owning context, or ``None``.
        """
        resolver: ContextResolver | None = self._context_resolver
        if resolver is None:
            return None
        try:
            return resolver(target)
        except Exception:
            logger.warning("Context resolver failed for %s", type_name(type(target)), exc_info=True)
            return None

    def _resubmit(self, target: object, call: Callable[..., object], args: tuple[object, ...], label: str) -> None:
        """Hand a failed call to the target's owning context without waiting.

        :param target: Invocation target.
        :param call: Bound callable.
        :param args: Positional arguments.
        :param label: Member label used in log records.
        """
        context: ExecutionContext | None = self._owning_context(target)
        if context is None:
            logger.debug("No owning context for %s; dropping failed call %s", type_name(type(target)), label)
            return
        try:
            context.submit(functools.partial(_run_detached, call, args, label))
        except Exception:
            logger.warning("Could not resubmit %s to its owning context", label, exc_info=True)
            return
        logger.info("Resubmitted %s to its owning context", label)

    def invoke(self, target: object, descriptor: MemberDescriptor, args: Sequence[object]) -> int:
        """Call one listed method on ``target``.

        :param target: Invocation target.
        :param descriptor: Method descriptor from ``list_methods(target)``.
        :param args: Positional arguments.
        :returns: Handle of a non-null result, else ``NO_OBJECT``.
        :raises ArgumentShapeError: If ``args`` do not fit the method's parameters.
        """
        label: str = f"{type_name(descriptor.declaring_type)}.{descriptor.name}"
        if arguments_fit(descriptor, args) is False:
            raise ArgumentShapeError(f"Arguments do not fit {label}{descriptor.parameter_type_names}")

        argument_tuple: tuple[object, ...] = tuple(args)
        try:
            call: Callable[..., object] = _bind_member(descriptor, target)
        except Exception:
            logger.debug("Could not bind %s", label, exc_info=True)
            return NO_OBJECT

        try:
            result: object = call(*argument_tuple)
        except (Exception, SystemExit):
            logger.debug("Direct call of %s failed", label, exc_info=True)
            self._resubmit(target, call, argument_tuple, label)
            return NO_OBJECT
        return self._registry.push(result)

    def invoke_by_name(self, target: object, name: str, args: Sequence[object]) -> int:
        """Call the first method named ``name`` whose parameters fit ``args``.

        :param target: Invocation target.
        :param name: Method name.
        :param args: Positional arguments.
        :returns: Result handle, ``NO_OBJECT`` on failure, ``METHOD_NOT_FOUND`` without a fitting candidate.
        """
        for descriptor in list_methods(target):
            if descriptor.name != name:
                continue
            if arguments_fit(descriptor, args) is False:
                continue
            return self.invoke(target, descriptor, args)
        return METHOD_NOT_FOUND

    def construct(self, value_type: type, args: Sequence[object]) -> int:
        """Instantiate ``value_type`` with ``args``.

        :param value_type: Class object.
        :param args: Positional constructor arguments.
        :returns: New handle, ``CONSTRUCT_SHAPE_MISMATCH`` or ``CONSTRUCT_INSTANTIATION_FAILED``.
        """
        descriptor: MemberDescriptor = _implicit_constructor(value_type)
        if arguments_fit(descriptor, args) is False:
            return CONSTRUCT_SHAPE_MISMATCH
        try:
            instance: object = value_type(*args)
        except (Exception, SystemExit):
            logger.debug("Instantiation of %s failed", type_name(value_type), exc_info=True)
            return CONSTRUCT_INSTANTIATION_FAILED
        return self._registry.push(instance)
