"""Tests for macro loading, replacement and execution."""

import hashlib
import sys
import textwrap
from pathlib import Path

import pytest

from heapscope.errors import MacroLoadError
from heapscope.macros import MacroRegistry
from tests.fixtures.object_graph import Counter
from tests.fixtures.object_graph import Engine

SCALER_SOURCE: bytes = textwrap.dedent(
    """
    from heapscope.macros import Macro


    class CounterScaler(Macro):
        description = "Scale a counter"

        def is_compatible(self, target):
            return isinstance(getattr(target, "value", None), int)

        def parameters(self):
            return [int]

        def run(self, target, parameters):
            return target.value * parameters[0]
    """
).encode("utf-8")

SCALER_V2_SOURCE: bytes = textwrap.dedent(
    """
    class CounterScaler:
        def is_compatible(self, target):
            return True

        def parameters(self):
            return []

        def run(self, target, parameters):
            return "replaced"
    """
).encode("utf-8")

NESTED_SOURCE: bytes = textwrap.dedent(
    """
    class Tools:
        class Describe:
            description = "Describe anything"

            def is_compatible(self, target):
                raise RuntimeError("predicate failure")

            def parameters(self):
                return [str, "tests.fixtures.object_graph.Engine"]

            def run(self, target, parameters):
                return repr(target)
    """
).encode("utf-8")


def _registry(store_dir: Path) -> MacroRegistry:
    """Build a registry over an empty store.

    :param store_dir: Store directory.
    :returns: Prepared registry.
    """
    registry: MacroRegistry = MacroRegistry(store_dir)
    registry.prepare_store()
    return registry


def test_load_and_run(tmp_path: Path) -> None:
    """A loaded unit filters, describes and runs.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)

    index: int = registry.load("CounterScaler", SCALER_SOURCE)
    assert index == 0
    assert registry.names() == ["CounterScaler"]
    assert registry.filter_applicable(Counter(3)) == [0]
    assert registry.filter_applicable(Engine()) == []
    assert registry.parameter_type_names(0) == ["int"]
    assert registry.description(0) == "Scale a counter"
    assert registry.run(0, Counter(3), [4]) == 12


def test_source_is_persisted_under_content_digest(tmp_path: Path) -> None:
    """Each load persists its source in the store directory.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)
    registry.load("CounterScaler", SCALER_SOURCE)

    persisted: list[Path] = sorted(tmp_path.glob("*.py"))
    assert len(persisted) == 1
    assert persisted[0].name.startswith("CounterScaler-") is True
    assert len(persisted[0].stem.split("-")[1]) == 16
    assert persisted[0].read_bytes() == SCALER_SOURCE


def test_prepare_store_flushes_only_stored_sources(tmp_path: Path) -> None:
    """Macro sources from an earlier run are removed; other files survive.

    :param tmp_path: Pytest temporary directory.
    """
    stale: Path = tmp_path / "Stale-0123456789abcdef.py"
    stale.write_text("raise SystemExit\n", encoding="utf-8")
    nested_stale: Path = tmp_path / "Tools.Describe-fedcba9876543210.py"
    nested_stale.write_text("pass\n", encoding="utf-8")
    user_module: Path = tmp_path / "my_app.py"
    user_module.write_text("print('keep me')\n", encoding="utf-8")
    look_alike: Path = tmp_path / "settings-local.py"
    look_alike.write_text("DEBUG = True\n", encoding="utf-8")
    notes: Path = tmp_path / "notes.txt"
    notes.write_text("kept", encoding="utf-8")

    _registry(tmp_path)
    assert stale.exists() is False
    assert nested_stale.exists() is False
    assert user_module.exists() is True
    assert look_alike.exists() is True
    assert notes.exists() is True


def test_reload_replaces_in_place(tmp_path: Path) -> None:
    """Loading an existing name keeps its index and swaps the unit.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)
    registry.load("CounterScaler", SCALER_SOURCE)
    registry.load("Tools.Describe", NESTED_SOURCE)

    index: int = registry.load("CounterScaler", SCALER_V2_SOURCE)
    assert index == 0
    assert len(registry) == 2
    assert registry.run(0, Counter(3), []) == "replaced"
    assert registry.description(0) == "CounterScaler"


def test_reload_releases_replaced_module_and_source(tmp_path: Path) -> None:
    """A replaced unit's module and persisted source are dropped.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)
    registry.load("CounterScaler", SCALER_SOURCE)
    old_digest: str = hashlib.sha256(SCALER_SOURCE).hexdigest()[:16]
    new_digest: str = hashlib.sha256(SCALER_V2_SOURCE).hexdigest()[:16]
    assert f"_heapscope_macro_CounterScaler_{old_digest}" in sys.modules

    registry.load("CounterScaler", SCALER_V2_SOURCE)
    assert f"_heapscope_macro_CounterScaler_{old_digest}" not in sys.modules
    assert f"_heapscope_macro_CounterScaler_{new_digest}" in sys.modules
    assert [path.name for path in tmp_path.glob("*.py")] == [f"CounterScaler-{new_digest}.py"]

    registry.load("CounterScaler", SCALER_V2_SOURCE)
    assert f"_heapscope_macro_CounterScaler_{new_digest}" in sys.modules
    assert [path.name for path in tmp_path.glob("*.py")] == [f"CounterScaler-{new_digest}.py"]
    assert registry.run(0, Counter(), []) == "replaced"


def test_nested_class_and_failing_predicate(tmp_path: Path) -> None:
    """Dotted names address nested classes; raising predicates reject.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)

    index: int = registry.load("Tools.Describe", NESTED_SOURCE)
    assert registry.filter_applicable(Counter()) == []
    assert registry.parameter_type_names(index) == ["str", "tests.fixtures.object_graph.Engine"]
    assert registry.description(index) == "Describe anything"


@pytest.mark.parametrize(
    ("name", "code"),
    [
        ("CounterScaler", b"class CounterScaler(:\n"),
        ("CounterScaler", b"class Other:\n    pass\n"),
        ("CounterScaler", b"CounterScaler = 3\n"),
        ("CounterScaler", b"class CounterScaler:\n    def __init__(self):\n        raise ValueError('no')\n"),
        ("CounterScaler", b"class CounterScaler:\n    def parameters(self):\n        return []\n"),
        ("CounterScaler", b"\xff\xfe not utf-8"),
        ("not a name", b"class X:\n    pass\n"),
        ("CounterScaler", b"raise SystemExit(3)\n"),
        ("CounterScaler", b"import sys\nsys.exit()\n"),
        ("CounterScaler", b"class CounterScaler:\n    def __init__(self):\n        raise SystemExit('no')\n"),
    ],
)
def test_failed_load_leaves_registry_unchanged(tmp_path: Path, name: str, code: bytes) -> None:
    """Any failing step raises and keeps the prior unit.

    :param tmp_path: Pytest temporary directory.
    :param name: Macro name.
    :param code: Macro source.
    """
    registry: MacroRegistry = _registry(tmp_path)
    registry.load("CounterScaler", SCALER_SOURCE)

    with pytest.raises(MacroLoadError):
        registry.load(name, code)
    assert registry.names() == ["CounterScaler"]
    assert registry.run(0, Counter(2), [5]) == 10
    assert len(list(tmp_path.glob("*.py"))) == 1
    digest: str = hashlib.sha256(code).hexdigest()[:16]
    assert f"_heapscope_macro_{name.replace('.', '_')}_{digest}" not in sys.modules


def test_exiting_predicate_counts_as_rejection(tmp_path: Path) -> None:
    """A predicate raising ``SystemExit`` rejects instead of escaping.

    :param tmp_path: Pytest temporary directory.
    """
    source: bytes = textwrap.dedent(
        """
        class Quitter:
            def is_compatible(self, target):
                raise SystemExit(1)

            def parameters(self):
                return []

            def run(self, target, parameters):
                return None
        """
    ).encode("utf-8")
    registry: MacroRegistry = _registry(tmp_path)
    registry.load("CounterScaler", SCALER_SOURCE)
    registry.load("Quitter", source)

    assert registry.filter_applicable(Counter(1)) == [0]


def test_trust_policy_runs_before_any_code(tmp_path: Path) -> None:
    """A rejecting policy prevents the source from executing.

    :param tmp_path: Pytest temporary directory.
    """
    marker: Path = tmp_path / "executed.txt"
    source: bytes = textwrap.dedent(
        f"""
        from pathlib import Path

        Path({str(marker)!r}).write_text("ran", encoding="utf-8")


        class Rogue:
            pass
        """
    ).encode("utf-8")
    store_dir: Path = tmp_path / "store"
    registry: MacroRegistry = MacroRegistry(store_dir, trust_policy=lambda name, code: name.startswith("Trusted"))
    registry.prepare_store()

    with pytest.raises(MacroLoadError):
        registry.load("Rogue", source)
    assert marker.exists() is False
    assert len(registry) == 0


def test_unknown_unit_index(tmp_path: Path) -> None:
    """Indices outside the registry raise ``IndexError``.

    :param tmp_path: Pytest temporary directory.
    """
    registry: MacroRegistry = _registry(tmp_path)

    with pytest.raises(IndexError):
        registry.unit(0)
    with pytest.raises(IndexError):
        registry.description(-1)
