"""Inspection façade composing the registry, introspection, invocation and macros."""

import logging
import os
import tempfile
from collections.abc import Iterable
from collections.abc import Sequence
from pathlib import Path

from heapscope import access
from heapscope import introspection
from heapscope import sequences
from heapscope.errors import MacroLoadError
from heapscope.errors import TypeNotFoundError
from heapscope.introspection import SEPARATOR
from heapscope.introspection import MemberDescriptor
from heapscope.introspection import value_type_name
from heapscope.invoker import CONSTRUCT_FAULT
from heapscope.invoker import ContextResolver
from heapscope.invoker import Invoker
from heapscope.macros import MACRO_FAULTS
from heapscope.macros import MacroRegistry
from heapscope.macros import TrustPolicy
from heapscope.registry import NO_OBJECT
from heapscope.registry import HandleRegistry

logger = logging.getLogger(__name__)

MACRO_DIR_ENV: str = "HEAPSCOPE_MACRO_DIR"
FieldPath = Sequence[int]


def _default_macro_dir() -> Path:
    """Pick the macro store directory when none is configured.

    :returns: ``$HEAPSCOPE_MACRO_DIR`` when set, else a fresh private temporary directory.
    """
    configured: str | None = os.environ.get(MACRO_DIR_ENV)
    if configured is not None and len(configured) > 0:
        return Path(configured)
    return Path(tempfile.mkdtemp(prefix="heapscope-macros-"))


class InspectionService:
    """Expose a process's live objects to a remote controller through integer handles.

    Every operation takes and returns integers, strings, or lists of them.
    Faults inside the inspected process degrade to sentinels; only an
    argument-shape mismatch on a direct ``invoke`` and an unknown handle
    raise.
    """

    _registry: HandleRegistry
    _invoker: Invoker
    _macros: MacroRegistry

    def __init__(
        self,
        roots: Iterable[object] = (),
        macro_store_dir: str | Path | None = None,
        context_resolver: ContextResolver | None = None,
        trust_policy: TrustPolicy | None = None,
    ) -> None:
        """Initialize the service and register initial roots.

        :param roots: Objects registered as the first entry points.
        :param macro_store_dir: Directory receiving macro sources; flushed on start.
        :param context_resolver: Optional lookup of a target's owning execution context.
        :param trust_policy: Optional gate consulted before macro code executes.
        :raises TypeError: If a hook is given but not callable.
        """
        if context_resolver is not None and callable(context_resolver) is False:
            raise TypeError("context_resolver must be callable")
        if trust_policy is not None and callable(trust_policy) is False:
            raise TypeError("trust_policy must be callable")

        store_dir: Path = _default_macro_dir() if macro_store_dir is None else Path(macro_store_dir)
        self._registry = HandleRegistry()
        self._invoker = Invoker(self._registry, context_resolver=context_resolver)
        self._macros = MacroRegistry(store_dir, trust_policy=trust_policy)
        self._macros.prepare_store()
        for root in roots:
            self._registry.push(root)

    @property
    def registry(self) -> HandleRegistry:
        """Return the root registry.

        :returns: Registry shared by every operation.
        """
        return self._registry

    @property
    def macro_store_dir(self) -> Path:
        """Return the macro store directory.

        :returns: Store directory.
        """
        return self._macros.store_dir

    def _resolve(self, handle: int, path: FieldPath) -> object:
        return access.resolve_path(self._registry, handle, path)

    def _resolve_args(self, arg_handles: Sequence[int]) -> list[object]:
        """Resolve argument handles; negative handles stand for ``None``.

        :param arg_handles: Argument handles.
        :returns: Live argument values.
        """
        return [None if handle < 0 else self._registry.resolve(handle) for handle in arg_handles]

    def _method_at(self, target: object, method_index: int) -> MemberDescriptor | None:
        methods: list[MemberDescriptor] = introspection.list_methods(target)
        if method_index < 0 or method_index >= len(methods):
            return None
        return methods[method_index]

    def _constructible_type(self, type_name_or_handle: str | int, path: FieldPath) -> type | None:
        """Resolve the class addressed by a type name or a handle.

        :param type_name_or_handle: Type name, or a handle to a class or instance.
        :param path: Field path applied when a handle is given.
        :returns: Class object, or ``None`` when nothing resolves.
        """
        if isinstance(type_name_or_handle, str) is True:
            try:
                return introspection.resolve_type(type_name_or_handle)  # type: ignore[arg-type]
            except TypeNotFoundError:
                logger.debug("Type %r not found", type_name_or_handle)
                return None
        value: object = self._resolve(type_name_or_handle, path)  # type: ignore[arg-type]
        if value is None:
            return None
        if isinstance(value, type) is True:
            return value  # type: ignore[return-value]
        return type(value)

    # Roots

    def list_roots(self) -> list[str]:
        """Render every registry slot as ``text:typeName``, indexed by handle.

        :returns: One entry per handle; dropped roots render as ``null:null``.
        """
        result: list[str] = []
        for handle in range(len(self._registry)):
            value: object = self._registry.resolve(handle)
            result.append(f"{access.render_text(value)}{SEPARATOR}{value_type_name(value)}")
        return result

    def filter_roots(self, type_name: str) -> list[int]:
        """Return handles whose value is an instance of ``type_name``.

        :param type_name: Type name resolved in this process.
        :returns: Matching handles in registration order, empty when the type is unknown.
        """
        try:
            wanted: type = introspection.resolve_type(type_name)
        except TypeNotFoundError:
            logger.debug("Root filter type %r not found", type_name)
            return []
        return [
            handle
            for handle in self._registry.handles()
            if isinstance(self._registry.resolve(handle), wanted) is True
        ]

    def add_root(self, value: object) -> int:
        """Register an entry point supplied by the host.

        :param value: Live object.
        :returns: Its handle.
        """
        return self._registry.push(value)

    def remove_root(self, value: object) -> bool:
        """Drop an entry point without renumbering other handles.

        :param value: Previously registered object.
        :returns: ``True`` when the value was registered.
        """
        return self._registry.remove(value)

    def push_literal(self, value: str | int | bool) -> int:
        """Register a string, integer or boolean supplied by the controller.

        :param value: Literal value.
        :returns: Its handle.
        :raises TypeError: For any other value type.
        """
        if isinstance(value, (str, int, bool)) is False:
            raise TypeError("Only str, int and bool literals can be pushed")
        return self._registry.push(value)

    def push_resolved(self, handle: int, path: FieldPath = ()) -> int:
        """Register the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Existing or new handle, ``NO_OBJECT`` for ``None``.
        """
        return self._registry.push(self._resolve(handle, path))

    # Introspection

    def list_fields(self, handle: int, path: FieldPath = ()) -> list[str]:
        """List fields of the value reached by ``path`` as ``name:descriptor``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Field listing in selector order.
        """
        return [descriptor.describe() for descriptor in introspection.list_fields(self._resolve(handle, path))]

    def list_methods(self, handle: int, path: FieldPath = ()) -> list[str]:
        """List methods of the value reached by ``path`` as ``name:descriptor``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Method listing in method-index order.
        """
        return [descriptor.describe() for descriptor in introspection.list_methods(self._resolve(handle, path))]

    def list_constructors(self, type_name_or_handle: str | int, path: FieldPath = ()) -> list[str]:
        """List the initializers of a class named or reached by handle.

        :param type_name_or_handle: Type name, or a handle to a class or instance.
        :param path: Field selectors applied when a handle is given.
        :returns: Constructor listing, empty when nothing resolves.
        """
        value_type: type | None = self._constructible_type(type_name_or_handle, path)
        if value_type is None:
            return []
        return [descriptor.describe() for descriptor in introspection.list_constructors(value_type)]

    def list_nested_types(self, handle: int, path: FieldPath = ()) -> list[str]:
        """List classes nested in the ancestry of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Nested type listing.
        """
        value: object = self._resolve(handle, path)
        return [descriptor.describe() for descriptor in introspection.list_nested_types(value)]

    def resolve_type_name(self, handle: int, path: FieldPath = ()) -> str:
        """Return the runtime type name of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Type name, or ``"null"``.
        """
        return value_type_name(self._resolve(handle, path))

    def all_ancestor_type_names(self, handle: int, path: FieldPath = ()) -> list[str]:
        """Return every type name along the MRO of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Type names, most-derived first.
        """
        return introspection.all_ancestor_type_names(self._resolve(handle, path))

    def method_name(self, handle: int, path: FieldPath, method_index: int) -> str:
        """Render one method of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :param method_index: Index into the method listing.
        :returns: Method rendering, or ``"null"`` for an unknown index.
        """
        descriptor: MemberDescriptor | None = self._method_at(self._resolve(handle, path), method_index)
        if descriptor is None:
            return "null"
        return descriptor.describe()

    def method_params(self, handle: int, path: FieldPath, method_index: int) -> list[str]:
        """Return the parameter type names of one method.

        :param handle: Root handle.
        :param path: Field selectors.
        :param method_index: Index into the method listing.
        :returns: Type names, empty for an unknown index.
        """
        descriptor: MemberDescriptor | None = self._method_at(self._resolve(handle, path), method_index)
        if descriptor is None:
            return []
        return descriptor.parameter_type_names

    # Values

    def read_path(self, handle: int, path: FieldPath = ()) -> str:
        """Render the reached value followed by the names of the traversed fields.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: ``text:field,field,...``.
        """
        steps: list[access.PathStep] = access.browse_path(self._registry, handle, path)
        text: str = access.render_text(self._resolve(handle, path))
        names: str = ",".join(descriptor.name for descriptor, _ in steps)
        return f"{text}{SEPARATOR}{names}"

    def read_value(self, handle: int, path: FieldPath = ()) -> str:
        """Render the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Value text, or ``"null"``.
        """
        return access.render_text(self._resolve(handle, path))

    def write_path(self, handle: int, path: FieldPath, value_handle: int) -> None:
        """Assign a registered value to the field named by the last selector.

        Rejected writes are absorbed; re-read to observe the outcome.

        :param handle: Root handle.
        :param path: Field selectors.
        :param value_handle: Handle of the new value; negative assigns ``None``.
        """
        value: object = None if value_handle < 0 else self._registry.resolve(value_handle)
        access.write_path(self._registry, handle, path, value)

    # Invocation

    def invoke(self, handle: int, path: FieldPath, method_index: int, arg_handles: Sequence[int] = ()) -> int:
        """Call one listed method of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :param method_index: Index into the method listing.
        :param arg_handles: Argument handles.
        :returns: Result handle, or ``NO_OBJECT``.
        :raises ArgumentShapeError: If the arguments do not fit the method.
        """
        target: object = self._resolve(handle, path)
        descriptor: MemberDescriptor | None = self._method_at(target, method_index)
        if descriptor is None:
            logger.debug("Method index %d not found on %s", method_index, value_type_name(target))
            return NO_OBJECT
        return self._invoker.invoke(target, descriptor, self._resolve_args(arg_handles))

    def invoke_by_name(self, handle: int, path: FieldPath, method_name: str, arg_handles: Sequence[int] = ()) -> int:
        """Call the first method named ``method_name`` that fits the arguments.

        :param handle: Root handle.
        :param path: Field selectors.
        :param method_name: Method name.
        :param arg_handles: Argument handles.
        :returns: Result handle, ``NO_OBJECT`` on failure, ``METHOD_NOT_FOUND`` without a candidate.
        """
        target: object = self._resolve(handle, path)
        return self._invoker.invoke_by_name(target, method_name, self._resolve_args(arg_handles))

    def construct(self, type_name_or_handle: str | int, arg_handles: Sequence[int] = ()) -> int:
        """Instantiate a class named or reached by handle.

        :param type_name_or_handle: Type name, or a handle to a class or instance.
        :param arg_handles: Constructor argument handles.
        :returns: New handle or a negative ``CONSTRUCT_*`` code.
        """
        value_type: type | None = self._constructible_type(type_name_or_handle, ())
        if value_type is None:
            return CONSTRUCT_FAULT
        args: list[object] = self._resolve_args(arg_handles)
        try:
            return self._invoker.construct(value_type, args)
        except Exception:
            logger.warning("Construction of %s faulted", introspection.type_name(value_type), exc_info=True)
            return CONSTRUCT_FAULT

    # Sequences

    def is_sequence(self, handle: int, path: FieldPath = ()) -> bool:
        """Report whether the value reached by ``path`` can be enumerated.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: ``True`` for arrays and iterables.
        """
        return sequences.is_sequence(self._resolve(handle, path))

    def enumerate_items(self, handle: int, path: FieldPath = ()) -> list[str]:
        """Render the elements of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: ``text:typeName`` per element.
        """
        value: object = self._resolve(handle, path)
        try:
            return sequences.enumerate_items(value)
        except Exception:
            logger.debug("Enumeration of %s failed", value_type_name(value), exc_info=True)
            return []

    def item_at(self, handle: int, path: FieldPath, index: int) -> int:
        """Register the element at ``index`` of the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :param index: Element position.
        :returns: Element handle, or ``NO_OBJECT``.
        """
        value: object = self._resolve(handle, path)
        try:
            item: object = sequences.item_at(value, index)
        except Exception:
            logger.debug("Item %d of %s unavailable", index, value_type_name(value), exc_info=True)
            return NO_OBJECT
        return self._registry.push(item)

    # Macros

    def list_macros(self) -> list[str]:
        """Return loaded macro names in registry order.

        :returns: Macro names.
        """
        return self._macros.names()

    def filter_macros(self, handle: int, path: FieldPath = ()) -> list[int]:
        """Return indices of macros applicable to the value reached by ``path``.

        :param handle: Root handle.
        :param path: Field selectors.
        :returns: Macro indices in registry order.
        """
        return self._macros.filter_applicable(self._resolve(handle, path))

    def macro_params(self, macro_index: int) -> list[str]:
        """Return the parameter type names of one macro.

        :param macro_index: Macro index.
        :returns: Type names, empty for an unknown or faulty macro.
        """
        try:
            return self._macros.parameter_type_names(macro_index)
        except MACRO_FAULTS:
            logger.debug("Parameters of macro %d unavailable", macro_index, exc_info=True)
            return []

    def macro_description(self, macro_index: int) -> str:
        """Return the description of one macro.

        :param macro_index: Macro index.
        :returns: Description, or ``"null"`` for an unknown index.
        """
        try:
            return self._macros.description(macro_index)
        except MACRO_FAULTS:
            logger.debug("Description of macro %d unavailable", macro_index, exc_info=True)
            return "null"

    def run_macro(self, macro_index: int, handle: int, path: FieldPath = (), arg_handles: Sequence[int] = ()) -> int:
        """Run one macro against the value reached by ``path``.

        :param macro_index: Macro index.
        :param handle: Root handle.
        :param path: Field selectors.
        :param arg_handles: Macro argument handles.
        :returns: Result handle, or ``NO_OBJECT``.
        """
        target: object = self._resolve(handle, path)
        args: list[object] = self._resolve_args(arg_handles)
        try:
            result: object = self._macros.run(macro_index, target, args)
        except MACRO_FAULTS:
            logger.warning("Macro %d failed", macro_index, exc_info=True)
            return NO_OBJECT
        return self._registry.push(result)

    def load_macro(self, name: str, code: bytes) -> int:
        """Load or replace the macro ``name`` from Python source bytes.

        :param name: Macro name and class qualname.
        :param code: UTF-8 Python source.
        :returns: Macro index, or ``NO_OBJECT`` when loading fails.
        """
        try:
            return self._macros.load(name, bytes(code))
        except MacroLoadError:
            logger.warning("Could not load macro %s", name, exc_info=True)
            return NO_OBJECT
