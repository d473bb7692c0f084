"""Member enumeration over a value's runtime type and its ancestry."""

import builtins
import importlib
import inspect
import logging
import typing
from typing import ClassVar
from typing import Literal

from heapscope.errors import TypeNotFoundError

logger = logging.getLogger(__name__)

SEPARATOR: str = ":"
MemberKind = Literal["field", "method", "constructor", "nested_type"]

_INTERNAL_NAMES: frozenset[str] = frozenset(
    {
        "__annotate__",
        "__annotate_func__",
        "__annotations__",
        "__annotations_cache__",
        "__classcell__",
        "__dict__",
        "__doc__",
        "__firstlineno__",
        "__init__",
        "__module__",
        "__new__",
        "__orig_bases__",
        "__parameters__",
        "__qualname__",
        "__slots__",
        "__static_attributes__",
        "__weakref__",
    }
)


class MemberDescriptor:
    """Describe one field, method, constructor or nested type of a class level."""

    kind: MemberKind
    name: str
    declaring_type: type
    qualifiers: tuple[str, ...]
    value_type_name: str
    attribute: object
    signature: inspect.Signature | None
    parameters: list[inspect.Parameter]
    hints: dict[str, object]

    def __init__(
        self,
        kind: MemberKind,
        name: str,
        declaring_type: type,
        qualifiers: tuple[str, ...],
        value_type_name: str,
        attribute: object = None,
        signature: inspect.Signature | None = None,
        parameters: list[inspect.Parameter] | None = None,
        hints: dict[str, object] | None = None,
    ) -> None:
        """Initialize a member descriptor.

        :param kind: Member category.
        :param name: Attribute name as stored on the class or instance.
        :param declaring_type: Class level that declares the member.
        :param qualifiers: Access and binding qualifiers.
        :param value_type_name: Field type, return type or nested type name.
        :param attribute: Raw class attribute, when one exists.
        :param signature: Callable signature for methods and constructors.
        :param parameters: Caller-visible parameters, without ``self``/``cls``.
        :param hints: Resolved parameter annotations keyed by parameter name.
        """
        self.kind = kind
        self.name = name
        self.declaring_type = declaring_type
        self.qualifiers = qualifiers
        self.value_type_name = value_type_name
        self.attribute = attribute
        self.signature = signature
        self.parameters = [] if parameters is None else parameters
        self.hints = {} if hints is None else hints

    @property
    def parameter_type_names(self) -> list[str]:
        """Return declared parameter type names in call order.

        :returns: One type name per caller-visible parameter.
        """
        names: list[str] = []
        for parameter in self.parameters:
            annotation: object = self.hints.get(parameter.name, parameter.annotation)
            names.append(annotation_name(annotation))
        return names

    def render(self) -> str:
        """Render the member without its leading name.

        :returns: Human-readable descriptor text.
        """
        qualifier_text: str = " ".join(self.qualifiers)
        owner: str = type_name(self.declaring_type)
        if self.kind == "field":
            return f"{qualifier_text} {self.value_type_name}"
        if self.kind == "nested_type":
            return f"{qualifier_text} class {self.value_type_name}"

        parameter_text: str = ", ".join(self.parameter_type_names)
        if self.kind == "constructor":
            return f"{qualifier_text} {owner}({parameter_text})"
        return f"{qualifier_text} {self.value_type_name} {owner}.{self.name}({parameter_text})"

    def describe(self) -> str:
        """Render the member as ``name:descriptor``.

        :returns: Wire text for member listings.
        """
        return f"{self.name}{SEPARATOR}{self.render()}"

    def __repr__(self) -> str:
        """Return a debugging representation.

        :returns: Representation string.
        """
        return f"<MemberDescriptor {self.kind} {type_name(self.declaring_type)}.{self.name}>"


def type_name(value_type: type) -> str:
    """Return the dotted name used for ``value_type`` on the wire.

    :param value_type: Class object.
    :returns: ``module.qualname``, or the bare name for builtins.
    """
    module_name: object = getattr(value_type, "__module__", None)
    qualname: object = getattr(value_type, "__qualname__", None)
    if isinstance(qualname, str) is False:
        return repr(value_type)
    if module_name == "builtins" or isinstance(module_name, str) is False:
        return qualname
    return f"{module_name}.{qualname}"


def annotation_name(annotation: object) -> str:
    """Render one annotation as a type name.

    :param annotation: Raw or resolved annotation.
    :returns: Type name text, ``object`` when absent.
    """
    if annotation is inspect.Parameter.empty or annotation is inspect.Signature.empty:
        return "object"
    if annotation is None or annotation is type(None):
        return "None"
    if isinstance(annotation, str) is True:
        return annotation
    if isinstance(annotation, type) is True and typing.get_origin(annotation) is None:
        return type_name(annotation)
    return str(annotation).replace("typing.", "")


def value_type_name(value: object) -> str:
    """Return the runtime type name of ``value``.

    :param value: Any value.
    :returns: Type name, or ``"null"`` for ``None``.
    """
    if value is None:
        return "null"
    return type_name(type(value))


def resolve_qualname(root: object, qualname: str) -> object:
    """Resolve a dotted qualname against a root object.

    :param root: Root object.
    :param qualname: Dotted qualname, such as ``Outer.Inner``.
    :returns: Resolved object.
    """
    current: object = root
    pieces: list[str] = qualname.split(".")
    for piece in pieces:
        current = getattr(current, piece)
    return current


def _import_and_resolve(module_name: str, qualname: str) -> object | None:
    """Import ``module_name`` and walk ``qualname`` inside it.

    :param module_name: Importable module path.
    :param qualname: Dotted attribute path inside the module.
    :returns: Resolved object, or ``None`` when any step fails.
    """
    try:
        module: object = importlib.import_module(module_name)
    except (ImportError, ValueError):
        return None
    except (Exception, SystemExit):
        logger.debug("Import of %s failed", module_name, exc_info=True)
        return None
    try:
        return resolve_qualname(module, qualname)
    except AttributeError:
        return None
    except Exception:
        logger.debug("Lookup of %s in %s failed", qualname, module_name, exc_info=True)
        return None


def resolve_type(name: str) -> type:
    """Resolve a type name in the host process.

    Accepts ``module:Qualname``, dotted ``module.Qualname`` (the longest
    importable module prefix wins) and bare builtin names.

    :param name: Type name.
    :returns: Resolved class object.
    :raises TypeNotFoundError: If no class is found under ``name``.
    """
    candidate: object = None
    stripped: str = name.strip()
    if len(stripped) == 0:
        raise TypeNotFoundError("Type name cannot be empty")

    if SEPARATOR in stripped:
        module_name, _, qualname = stripped.partition(SEPARATOR)
        candidate = _import_and_resolve(module_name.strip(), qualname.strip())
    else:
        pieces: list[str] = stripped.split(".")
        if len(pieces) == 1:
            candidate = getattr(builtins, stripped, None)
        for split in range(len(pieces) - 1, 0, -1):
            if isinstance(candidate, type) is True:
                break
            module_name = ".".join(pieces[:split])
            qualname = ".".join(pieces[split:])
            candidate = _import_and_resolve(module_name, qualname)

    if isinstance(candidate, type) is False:
        raise TypeNotFoundError(f"Type not found: {name}")
    return candidate


def ancestry(value_type: type) -> list[type]:
    """Return the class levels of ``value_type``, most-derived first.

    :param value_type: Class object.
    :returns: Method resolution order without ``object``.
    """
    return [level for level in value_type.__mro__ if level is not object]


def _access_qualifier(level: type, name: str) -> str:
    """Classify a member name by Python naming conventions.

    :param level: Declaring class.
    :param name: Member name.
    :returns: ``public``, ``protected`` or ``private``.
    """
    mangled_prefix: str = f"_{level.__name__.lstrip('_')}__"
    if name.startswith(mangled_prefix) is True:
        return "private"
    if name.startswith("_") is True and name.endswith("__") is False:
        return "protected"
    return "public"


def _is_dunder(name: str) -> bool:
    """Report whether ``name`` is a ``__special__`` name.

    :param name: Attribute name.
    :returns: ``True`` for dunder names.
    """
    return len(name) > 4 and name.startswith("__") is True and name.endswith("__") is True


def _own_annotations(level: type) -> dict[str, object]:
    """Return the annotations declared directly on ``level``.

    :param level: Class object.
    :returns: Annotation mapping, empty when it cannot be evaluated.
    """
    try:
        return dict(inspect.get_annotations(level, eval_str=True))
    except Exception:
        logger.debug("Could not evaluate annotations of %s", type_name(level), exc_info=True)
    try:
        return dict(inspect.get_annotations(level))
    except Exception:
        logger.debug("Could not read annotations of %s", type_name(level), exc_info=True)
        return {}


def _own_slots(level: type) -> list[str]:
    """Return slot names declared directly on ``level``.

    :param level: Class object.
    :returns: Slot names in declaration order.
    """
    slots: object = level.__dict__.get("__slots__", ())
    if isinstance(slots, str) is True:
        return [slots]
    if isinstance(slots, (tuple, list)) is True:
        return [name for name in slots if isinstance(name, str) is True]
    return []


def _is_method_attribute(attribute: object) -> bool:
    """Report whether a class attribute is listed as a method.

    :param attribute: Raw attribute from a class ``__dict__``.
    :returns: ``True`` for functions, static and class methods, builtin routines.
    """
    if isinstance(attribute, (staticmethod, classmethod)) is True:
        return True
    return inspect.isroutine(attribute)


def _callable_details(
    attribute: object,
    skip_first: bool,
) -> tuple[inspect.Signature | None, list[inspect.Parameter], dict[str, object], object]:
    """Extract signature data for a routine stored on a class.

    :param attribute: Function, static method, class method or builtin routine.
    :param skip_first: Whether the first parameter receives the bound target.
    :returns: Tuple of ``(signature, parameters, hints, return_annotation)``.
    """
    function: object = attribute
    if isinstance(attribute, (staticmethod, classmethod)) is True:
        function = attribute.__func__

    try:
        signature: inspect.Signature = inspect.signature(function)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None, [], {}, inspect.Signature.empty

    try:
        hints: dict[str, object] = typing.get_type_hints(function)
    except Exception:
        hints = {}

    parameters: list[inspect.Parameter] = list(signature.parameters.values())
    if skip_first is True and len(parameters) > 0:
        first_kind = parameters[0].kind
        if first_kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            parameters = parameters[1:]
    return_annotation: object = hints.get("return", signature.return_annotation)
    return signature, parameters, hints, return_annotation


def _field_descriptors(level: type) -> list[MemberDescriptor]:
    """List the fields declared directly on ``level``.

    :param level: Class object.
    :returns: Field descriptors in declaration order.
    """
    result: list[MemberDescriptor] = []
    seen: set[str] = set()
    namespace = level.__dict__

    for name, annotation in _own_annotations(level).items():
        if name in seen:
            continue
        seen.add(name)
        scope: str = "instance"
        declared: object = annotation
        if annotation is ClassVar or typing.get_origin(annotation) is ClassVar:
            scope = "class"
            arguments: tuple[object, ...] = typing.get_args(annotation)
            declared = arguments[0] if len(arguments) > 0 else inspect.Parameter.empty
        qualifiers: tuple[str, ...] = (_access_qualifier(level, name), scope)
        result.append(
            MemberDescriptor("field", name, level, qualifiers, annotation_name(declared), namespace.get(name))
        )

    for name in _own_slots(level):
        if name in seen or name in ("__dict__", "__weakref__"):
            continue
        seen.add(name)
        qualifiers = (_access_qualifier(level, name), "slot")
        result.append(MemberDescriptor("field", name, level, qualifiers, "object", namespace.get(name)))

    for name, attribute in namespace.items():
        if name in seen or name in _INTERNAL_NAMES or _is_dunder(name) is True:
            continue
        if isinstance(attribute, type) is True or _is_method_attribute(attribute) is True:
            continue
        seen.add(name)
        access: str = _access_qualifier(level, name)
        if isinstance(attribute, property) is True:
            getter_return: object = inspect.Signature.empty
            if attribute.fget is not None:
                getter_return = _callable_details(attribute.fget, skip_first=True)[3]
            qualifiers = (access, "property")
            if attribute.fset is None:
                qualifiers = (access, "property", "readonly")
            result.append(
                MemberDescriptor("field", name, level, qualifiers, annotation_name(getter_return), attribute)
            )
            continue
        has_getter: bool = hasattr(type(attribute), "__get__")
        if has_getter is True:
            qualifiers = (access, "property")
            result.append(MemberDescriptor("field", name, level, qualifiers, "object", attribute))
            continue
        qualifiers = (access, "class")
        result.append(MemberDescriptor("field", name, level, qualifiers, value_type_name(attribute), attribute))

    return result


def _own_static_attributes(level: type) -> list[str]:
    """Return attribute names assigned through ``self`` in methods of ``level``.

    The compiler records them in ``__static_attributes__`` since Python 3.13;
    older interpreters yield nothing.

    :param level: Class object.
    :returns: Attribute names in recorded order, private names mangled.
    """
    recorded: object = level.__dict__.get("__static_attributes__", ())
    if isinstance(recorded, tuple) is False:
        return []
    names: list[str] = []
    for name in recorded:
        if isinstance(name, str) is False or _is_dunder(name) is True:
            continue
        if name.startswith("__") is True:
            name = f"_{level.__name__.lstrip('_')}{name}"
        names.append(name)
    return names


def _static_attribute_owners(levels: list[type], declared: set[str]) -> dict[str, type]:
    """Attribute each undeclared ``self.x`` assignment to one class level.

    The most-base level assigning a name owns it, so a base initializer's
    attributes stay on the base level.

    :param levels: Ancestry, most-derived first.
    :param declared: Names already declared as fields on some level.
    :returns: Owning level per attribute name.
    """
    owners: dict[str, type] = {}
    for level in levels:
        for name in _own_static_attributes(level):
            if name not in declared:
                owners[name] = level
    return owners


def list_fields(value: object) -> list[MemberDescriptor]:
    """List every field visible on ``value``.

    Each class level contributes its own declared fields, most-derived level
    first. A level also owns the undeclared attributes its methods assign
    through ``self``. Instance attributes that remain unattributed follow as
    a trailing level owned by the runtime type.

    :param value: Inspected value.
    :returns: Field descriptors in selector order.
    """
    if value is None:
        return []
    runtime_type: type = type(value)
    levels: list[type] = ancestry(runtime_type)
    declared_levels: list[list[MemberDescriptor]] = [_field_descriptors(level) for level in levels]
    declared: set[str] = {descriptor.name for descriptors in declared_levels for descriptor in descriptors}

    instance_namespace: dict[str, object] | None = None
    try:
        namespace_obj: object = vars(value)
    except TypeError:
        namespace_obj = None
    if isinstance(namespace_obj, dict) is True:
        instance_namespace = namespace_obj  # type: ignore[assignment]

    owners: dict[str, type] = _static_attribute_owners(levels, declared)
    result: list[MemberDescriptor] = []
    for level, descriptors in zip(levels, declared_levels):
        result.extend(descriptors)
        for name in _own_static_attributes(level):
            if owners.get(name) is not level:
                continue
            field_type: str = "object"
            if instance_namespace is not None and name in instance_namespace:
                field_type = value_type_name(instance_namespace[name])
            qualifiers: tuple[str, ...] = (_access_qualifier(level, name), "instance")
            result.append(MemberDescriptor("field", name, level, qualifiers, field_type))
    seen: set[str] = {descriptor.name for descriptor in result}

    if instance_namespace is None:
        return result

    for name, attribute in list(instance_namespace.items()):
        if isinstance(name, str) is False:
            continue
        if name in seen or _is_dunder(name) is True:
            continue
        seen.add(name)
        qualifiers = (_access_qualifier(runtime_type, name), "instance", "dynamic")
        result.append(MemberDescriptor("field", name, runtime_type, qualifiers, value_type_name(attribute)))
    return result


def _method_descriptors(level: type) -> list[MemberDescriptor]:
    """List the methods declared directly on ``level``.

    :param level: Class object.
    :returns: Method descriptors in declaration order.
    """
    result: list[MemberDescriptor] = []
    for name, attribute in level.__dict__.items():
        if name in _INTERNAL_NAMES:
            continue
        if _is_method_attribute(attribute) is False:
            continue
        is_static: bool = isinstance(attribute, staticmethod)
        signature, parameters, hints, return_annotation = _callable_details(attribute, skip_first=not is_static)
        qualifiers: tuple[str, ...] = (_access_qualifier(level, name),)
        if is_static is True:
            qualifiers = (*qualifiers, "static")
        if isinstance(attribute, classmethod) is True:
            qualifiers = (*qualifiers, "class")
        result.append(
            MemberDescriptor(
                "method",
                name,
                level,
                qualifiers,
                annotation_name(return_annotation),
                attribute,
                signature,
                parameters,
                hints,
            )
        )
    return result


def list_methods(value: object) -> list[MemberDescriptor]:
    """List every method declared along the ancestry of ``value``'s type.

    The same name may appear once per declaring level; each entry invokes
    that level's own implementation.

    :param value: Inspected value.
    :returns: Method descriptors, most-derived level first.
    """
    if value is None:
        return []
    result: list[MemberDescriptor] = []
    for level in ancestry(type(value)):
        result.extend(_method_descriptors(level))
    return result


def list_constructors(value_type: type) -> list[MemberDescriptor]:
    """List the initializers declared along the ancestry of ``value_type``.

    :param value_type: Class object.
    :returns: Constructor descriptors, most-derived level first.
    """
    result: list[MemberDescriptor] = []
    for level in ancestry(value_type):
        namespace = level.__dict__
        attribute: object = namespace.get("__init__")
        if attribute is None:
            attribute = namespace.get("__new__")
        if attribute is None or _is_method_attribute(attribute) is False:
            continue
        signature, parameters, hints, _ = _callable_details(attribute, skip_first=True)
        qualifiers: tuple[str, ...] = ("public",)
        result.append(
            MemberDescriptor(
                "constructor",
                level.__name__,
                level,
                qualifiers,
                type_name(level),
                attribute,
                signature,
                parameters,
                hints,
            )
        )
    return result


def list_nested_types(value: object) -> list[MemberDescriptor]:
    """List classes declared inside each ancestry level of ``value``'s type.

    :param value: Inspected value.
    :returns: Nested type descriptors, most-derived level first.
    """
    if value is None:
        return []
    result: list[MemberDescriptor] = []
    for level in ancestry(type(value)):
        for name, attribute in level.__dict__.items():
            if isinstance(attribute, type) is False:
                continue
            if attribute.__qualname__ != f"{level.__qualname__}.{name}":
                continue
            qualifiers: tuple[str, ...] = (_access_qualifier(level, name),)
            result.append(MemberDescriptor("nested_type", name, level, qualifiers, type_name(attribute), attribute))
    return result


def all_ancestor_type_names(value: object) -> list[str]:
    """Return the name of every class ``value`` is an instance of via its MRO.

    :param value: Inspected value.
    :returns: Type names, most-derived first, ``object`` last.
    """
    if value is None:
        return []
    return [type_name(level) for level in type(value).__mro__]
