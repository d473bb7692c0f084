"""Dynamically loaded inspection macros."""

import abc
import hashlib
import importlib.util
import logging
import re
import sys
from collections.abc import Callable
from collections.abc import Sequence
from pathlib import Path
from types import ModuleType

from heapscope.errors import MacroLoadError
from heapscope.introspection import annotation_name
from heapscope.introspection import resolve_qualname
from heapscope.introspection import type_name

logger = logging.getLogger(__name__)

TrustPolicy = Callable[[str, bytes], bool]
MACRO_MEMBERS: tuple[str, ...] = ("is_compatible", "parameters", "run")
_MODULE_PREFIX: str = "_heapscope_macro_"
_DIGEST_LENGTH: int = 16
_STORED_SOURCE_PATTERN: re.Pattern[str] = re.compile(
    rf"^[A-Za-z_][A-Za-z0-9_.]*-[0-9a-f]{{{_DIGEST_LENGTH}}}\.py$"
)
# Failures raised by macro code; KeyboardInterrupt still propagates.
MACRO_FAULTS: tuple[type[BaseException], ...] = (Exception, SystemExit)


class Macro(abc.ABC):
    """Convenience base class for macro units.

    Any zero-argument class exposing ``is_compatible``, ``parameters`` and
    ``run`` is accepted by the loader; subclassing is optional. Keep
    ``description`` under 30 characters, controllers show it in select boxes.
    """

    description: str = ""

    @abc.abstractmethod
    def is_compatible(self, target: object) -> bool:
        """Check whether the macro applies to ``target``.

        :param target: Candidate execution target.
        :returns: ``True`` when the macro can run against ``target``.
        """

    @abc.abstractmethod
    def parameters(self) -> list[type]:
        """List the parameter types ``run`` expects.

        :returns: Parameter types in call order.
        """

    @abc.abstractmethod
    def run(self, target: object, parameters: list[object]) -> object:
        """Run the macro.

        No type check happens before ``run`` is called.

        :param target: Execution target.
        :param parameters: Macro parameters.
        :returns: Produced value, or ``None``.
        """


def _validate_macro_name(name: str) -> None:
    """Check that ``name`` is a dotted identifier path.

    :param name: Macro name, also the qualname of its class.
    :raises MacroLoadError: If the name cannot address a class.
    """
    pieces: list[str] = name.split(".")
    for piece in pieces:
        if piece.isidentifier() is False:
            raise MacroLoadError(f"Macro name must be a dotted identifier: {name!r}")


def _load_module(module_name: str, source_path: Path) -> ModuleType:
    """Execute one persisted macro source file as a fresh module.

    :param module_name: Unique module name.
    :param source_path: Persisted source path.
    :returns: Executed module.
    :raises MacroLoadError: If the source cannot be executed.
    """
    spec = importlib.util.spec_from_file_location(module_name, source_path)
    if spec is None or spec.loader is None:
        raise MacroLoadError(f"Could not create module spec for {source_path}")

    module: ModuleType = importlib.util.module_from_spec(spec)
    previous: ModuleType | None = sys.modules.get(module_name)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except MACRO_FAULTS as exc:
        if previous is None:
            sys.modules.pop(module_name, None)
        else:
            sys.modules[module_name] = previous
        raise MacroLoadError(f"Macro source {source_path.name} failed to execute: {exc}") from exc
    return module


def _is_stored_source(path: Path) -> bool:
    """Report whether ``path`` was written by a macro registry.

    :param path: Candidate file in the store directory.
    :returns: ``True`` for ``<name>-<digest>.py`` files.
    """
    return _STORED_SOURCE_PATTERN.match(path.name) is not None and path.is_file() is True


class MacroRegistry:
    """Hold loaded macro units under unique names, in load order."""

    _store_dir: Path
    _trust_policy: TrustPolicy | None
    _names: list[str]
    _units: list[object]
    _module_names: list[str]
    _source_paths: list[Path]

    def __init__(self, store_dir: Path, trust_policy: TrustPolicy | None = None) -> None:
        """Initialize an empty registry backed by ``store_dir``.

        :param store_dir: Directory receiving persisted macro sources.
        :param trust_policy: Optional gate consulted before any code executes.
        """
        self._store_dir = store_dir
        self._trust_policy = trust_policy
        self._names = []
        self._units = []
        self._module_names = []
        self._source_paths = []

    @property
    def store_dir(self) -> Path:
        """Return the macro source directory.

        :returns: Store directory.
        """
        return self._store_dir

    def prepare_store(self) -> None:
        """Create the store directory and flush macro sources left by earlier runs.

        Only files following the ``<name>-<digest>.py`` naming scheme are
        removed; anything else in the directory is left alone.
        """
        self._store_dir.mkdir(parents=True, exist_ok=True)
        for stale in self._store_dir.glob("*-*.py"):
            if _is_stored_source(stale) is True:
                stale.unlink()

    def __len__(self) -> int:
        """Return the number of loaded units.

        :returns: Unit count.
        """
        return len(self._units)

    def names(self) -> list[str]:
        """Return unit names in registry order.

        :returns: Macro names.
        """
        return list(self._names)

    def unit(self, index: int) -> object:
        """Return the unit at ``index``.

        :param index: Registry index.
        :returns: Macro instance.
        :raises IndexError: If ``index`` is out of range.
        """
        if index < 0 or index >= len(self._units):
            raise IndexError(f"Unknown macro index: {index}")
        return self._units[index]

    def load(self, name: str, code: bytes) -> int:
        """Materialize a unit from ``code`` and register it under ``name``.

        The source must define a class whose qualname is ``name``; it is
        instantiated without arguments. A unit already registered under
        ``name`` is replaced in place only once the new one is fully built.

        :param name: Macro name and class qualname.
        :param code: UTF-8 Python source.
        :returns: Registry index of the unit.
        :raises MacroLoadError: If any step fails; the registry is then unchanged.
        """
        _validate_macro_name(name)
        policy: TrustPolicy | None = self._trust_policy
        if policy is not None:
            try:
                trusted: bool = policy(name, code)
            except Exception as exc:
                raise MacroLoadError(f"Trust policy failed for macro {name!r}: {exc}") from exc
            if trusted is not True:
                raise MacroLoadError(f"Trust policy rejected macro {name!r}")

        try:
            code.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MacroLoadError(f"Macro {name!r} is not UTF-8 source") from exc

        digest: str = hashlib.sha256(code).hexdigest()[:_DIGEST_LENGTH]
        source_path: Path = self._store_dir / f"{name}-{digest}.py"
        module_name: str = f"{_MODULE_PREFIX}{name.replace('.', '_')}_{digest}"
        try:
            self._store_dir.mkdir(parents=True, exist_ok=True)
            source_path.write_bytes(code)
        except OSError as exc:
            raise MacroLoadError(f"Could not persist macro {name!r}: {exc}") from exc

        try:
            unit: object = self._materialize(name, module_name, source_path)
        except MacroLoadError:
            if source_path not in self._source_paths:
                source_path.unlink(missing_ok=True)
            raise

        existing: int | None = None
        if name in self._names:
            existing = self._names.index(name)
        if existing is None:
            self._names.append(name)
            self._units.append(unit)
            self._module_names.append(module_name)
            self._source_paths.append(source_path)
            index: int = len(self._units) - 1
            logger.info("Loaded macro %s at index %d", name, index)
            return index

        replaced_module: str = self._module_names[existing]
        replaced_source: Path = self._source_paths[existing]
        self._units[existing] = unit
        self._module_names[existing] = module_name
        self._source_paths[existing] = source_path
        if replaced_module != module_name:
            sys.modules.pop(replaced_module, None)
        if replaced_source != source_path:
            replaced_source.unlink(missing_ok=True)
        logger.info("Reloaded macro %s at index %d", name, existing)
        return existing

    def _materialize(self, name: str, module_name: str, source_path: Path) -> object:
        """Execute a persisted source and instantiate its macro class.

        :param name: Macro class qualname.
        :param module_name: Unique module name for the source.
        :param source_path: Persisted source path.
        :returns: Macro instance.
        :raises MacroLoadError: If the class is missing, unusable or fails to construct.
        """
        previous: ModuleType | None = sys.modules.get(module_name)
        module: ModuleType = _load_module(module_name, source_path)
        try:
            return self._instantiate(name, module)
        except MacroLoadError:
            if previous is None:
                sys.modules.pop(module_name, None)
            else:
                sys.modules[module_name] = previous
            raise

    def _instantiate(self, name: str, module: ModuleType) -> object:
        """Build the macro unit defined by an executed module.

        :param name: Macro class qualname.
        :param module: Executed macro module.
        :returns: Macro instance.
        :raises MacroLoadError: If the class is missing, unusable or fails to construct.
        """
        try:
            unit_type: object = resolve_qualname(module, name)
        except AttributeError as exc:
            raise MacroLoadError(f"Macro source does not define {name!r}") from exc
        except MACRO_FAULTS as exc:
            raise MacroLoadError(f"Macro {name!r} failed to resolve: {exc}") from exc
        if isinstance(unit_type, type) is False:
            raise MacroLoadError(f"Macro {name!r} is not a class")

        try:
            unit: object = unit_type()
        except MACRO_FAULTS as exc:
            raise MacroLoadError(f"Macro {name!r} failed to construct: {exc}") from exc

        for member in MACRO_MEMBERS:
            if callable(getattr(unit, member, None)) is False:
                raise MacroLoadError(f"Macro {name!r} does not implement {member}()")
        return unit

    def filter_applicable(self, target: object) -> list[int]:
        """Return indices of units whose predicate accepts ``target``.

        A predicate that raises counts as a rejection.

        :param target: Candidate execution target.
        :returns: Applicable indices in registry order.
        """
        applicable: list[int] = []
        for index, unit in enumerate(self._units):
            try:
                accepted: object = unit.is_compatible(target)  # type: ignore[attr-defined]
            except MACRO_FAULTS:
                logger.debug("Predicate of macro %s failed", self._names[index], exc_info=True)
                continue
            if bool(accepted) is True:
                applicable.append(index)
        return applicable

    def parameter_type_names(self, index: int) -> list[str]:
        """Return the parameter type names of one unit.

        :param index: Registry index.
        :returns: Type names in call order.
        """
        declared: object = self.unit(index).parameters()  # type: ignore[attr-defined]
        names: list[str] = []
        for parameter_type in declared:  # type: ignore[attr-defined]
            if isinstance(parameter_type, type) is True:
                names.append(type_name(parameter_type))
                continue
            names.append(annotation_name(parameter_type))
        return names

    def description(self, index: int) -> str:
        """Return the description of one unit.

        :param index: Registry index.
        :returns: Description text, the macro name when none is declared.
        """
        unit: object = self.unit(index)
        text: object = getattr(unit, "description", None)
        if callable(text) is True:
            text = text()  # type: ignore[operator]
        if isinstance(text, str) is False or len(text) == 0:
            return self._names[index]
        return text

    def run(self, index: int, target: object, args: Sequence[object]) -> object:
        """Run one unit against ``target``.

        :param index: Registry index.
        :param target: Execution target.
        :param args: Macro parameters.
        :returns: Whatever the unit returns.
        """
        unit: object = self.unit(index)
        return unit.run(target, list(args))  # type: ignore[attr-defined]
