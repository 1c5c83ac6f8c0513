"""Ownership ledger for buffers handed to the caller.

Every buffer leaving the engine is allocated here and recorded by address
together with its shape and length. The caller owns it from the moment it
is returned and must hand it back exactly once through the matching release
call.

Allocation shapes
- ``FLOAT32``: flat float32 buffer (embeddings)
- ``INT32``: flat int32 buffer (token ids)
- ``TEXT``: one NUL-terminated UTF-8 string
- ``TEXT_ARRAY``: array of NUL-terminated UTF-8 strings (tokens)

Caller obligations
- Releasing a NULL pointer is a no-op.
- Releasing the same buffer twice, a buffer this ledger did not produce, or
  with a shape/length other than the one it was returned with is a contract
  violation. The ledger raises ``KeyError``/``ValueError`` when it notices,
  but callers must not rely on that.
"""

import ctypes
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import numpy as np
import structlog

from .records import FloatPointer, Int32Pointer, TextArrayPointer
from ..runtime.metrics import MetricsCollector

logger = structlog.get_logger("similarity_service.ownership")


class AllocationShape(str, Enum):
    """The closed set of buffer shapes the boundary hands out."""
    FLOAT32 = "float32"
    INT32 = "int32"
    TEXT = "text"
    TEXT_ARRAY = "text_array"


@dataclass
class Allocation:
    shape: AllocationShape
    length: int
    buffer: Any
    # Element buffers of a TEXT_ARRAY; owned by the array allocation.
    elements: List[Any] = field(default_factory=list)


def address_of(pointer: Any) -> Optional[int]:
    """Numeric address of a ctypes pointer, ``None`` for NULL."""
    if pointer is None:
        return None
    if isinstance(pointer, int):
        return pointer or None
    return ctypes.cast(pointer, ctypes.c_void_p).value


class BufferAllocator:
    """Allocates outward-facing buffers and tracks them until released."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.metrics = metrics
        self._live: Dict[int, Allocation] = {}
        self._lock = threading.Lock()

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._live)

    def _register(self, address: int, allocation: Allocation) -> None:
        with self._lock:
            self._live[address] = allocation
            count = len(self._live)
        if self.metrics is not None:
            self.metrics.set_live_allocations(count)

    def _numeric(self, values: Any, dtype: Any, ctype: Any, shape: AllocationShape) -> Tuple[Any, int]:
        array = np.ascontiguousarray(values, dtype=dtype).reshape(-1)
        buffer = (ctype * array.size)()
        ctypes.memmove(buffer, array.ctypes.data, array.nbytes)
        self._register(ctypes.addressof(buffer), Allocation(shape, array.size, buffer))
        return buffer, array.size

    def alloc_float32(self, values: Any) -> Tuple[Any, int]:
        """Copy ``values`` into a new float32 buffer; returns (pointer, length)."""
        buffer, length = self._numeric(values, np.float32, ctypes.c_float, AllocationShape.FLOAT32)
        return ctypes.cast(buffer, FloatPointer), length

    def alloc_int32(self, values: Any) -> Tuple[Any, int]:
        """Copy ``values`` into a new int32 buffer; returns (pointer, length)."""
        buffer, length = self._numeric(values, np.int32, ctypes.c_int32, AllocationShape.INT32)
        return ctypes.cast(buffer, Int32Pointer), length

    def alloc_text(self, text: str) -> ctypes.c_char_p:
        """Copy ``text`` into a new NUL-terminated UTF-8 string."""
        encoded = text.encode("utf-8")
        buffer = ctypes.create_string_buffer(encoded)
        self._register(ctypes.addressof(buffer), Allocation(AllocationShape.TEXT, len(encoded), buffer))
        return ctypes.cast(buffer, ctypes.c_char_p)

    def alloc_text_array(self, texts: Sequence[str]) -> Tuple[Any, int]:
        """Copy ``texts`` into a new array of strings; returns (pointer, length)."""
        elements = [ctypes.create_string_buffer(text.encode("utf-8")) for text in texts]
        array = (ctypes.c_char_p * len(elements))()
        for index, element in enumerate(elements):
            array[index] = ctypes.addressof(element)
        self._register(
            ctypes.addressof(array),
            Allocation(AllocationShape.TEXT_ARRAY, len(elements), array, elements),
        )
        return ctypes.cast(array, TextArrayPointer), len(elements)

    def release(self, pointer: Any, shape: AllocationShape, length: Optional[int] = None) -> None:
        """Return a buffer to the engine.

        ``length`` is checked against the recorded allocation when given.
        NULL pointers are ignored.
        """
        address = address_of(pointer)
        if not address:
            return

        with self._lock:
            allocation = self._live[address]
            if allocation.shape != shape:
                raise ValueError(
                    f"Buffer at {address:#x} is {allocation.shape.value}, not {shape.value}"
                )
            if length is not None and allocation.length != length:
                raise ValueError(
                    f"Buffer at {address:#x} has length {allocation.length}, not {length}"
                )
            del self._live[address]
            count = len(self._live)

        if self.metrics is not None:
            self.metrics.set_live_allocations(count)
        logger.debug("Buffer released", shape=shape.value, length=allocation.length)
