"""Public package API for heapscope."""

from heapscope.api import InspectionHost
from heapscope.api import connect_inspection
from heapscope.api import serve_inspection
from heapscope.client import InspectionClient
from heapscope.errors import ArgumentShapeError
from heapscope.errors import HeapscopeError
from heapscope.errors import InspectionProtocolError
from heapscope.errors import InspectionRemoteError
from heapscope.errors import InvalidHandleError
from heapscope.errors import MacroLoadError
from heapscope.errors import TypeNotFoundError
from heapscope.invoker import CONSTRUCT_FAULT
from heapscope.invoker import CONSTRUCT_INSTANTIATION_FAILED
from heapscope.invoker import CONSTRUCT_SHAPE_MISMATCH
from heapscope.invoker import METHOD_NOT_FOUND
from heapscope.invoker import AffinityTable
from heapscope.invoker import EventLoopContext
from heapscope.invoker import ExecutorContext
from heapscope.macros import Macro
from heapscope.registry import NO_OBJECT
from heapscope.service import InspectionService

__all__: list[str] = [
    "AffinityTable",
    "ArgumentShapeError",
    "CONSTRUCT_FAULT",
    "CONSTRUCT_INSTANTIATION_FAILED",
    "CONSTRUCT_SHAPE_MISMATCH",
    "EventLoopContext",
    "ExecutorContext",
    "HeapscopeError",
    "InspectionClient",
    "InspectionHost",
    "InspectionProtocolError",
    "InspectionRemoteError",
    "InspectionService",
    "InvalidHandleError",
    "METHOD_NOT_FOUND",
    "Macro",
    "MacroLoadError",
    "NO_OBJECT",
    "TypeNotFoundError",
    "connect_inspection",
    "serve_inspection",
]
