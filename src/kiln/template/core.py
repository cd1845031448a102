"""Compiled units: generated routine source plus its executable form."""

from __future__ import annotations

import linecache
import time
from collections.abc import Callable
from dataclasses import dataclass
from types import CodeType, TracebackType
from typing import Any

from kiln.compiler import ROUTINE_NAME, GeneratedRoutine
from kiln.template.helpers import STATIC_NAMESPACE


@dataclass(frozen=True, slots=True)
class CompiledUnit:
    """Generated routine source and the function compiled from it.

    Units are immutable: a changed source produces a new unit that
    replaces the old one in the cache as a whole.

    Attributes:
        source_hash: SHA-256 hex digest of the template source.
        code: Python source of the routine.
        routine: ``routine(invocation)``; a coroutine function when
            ``is_async``, a generator (or async generator) function for
            streaming variants.
        created_at: ``time.time()`` at compilation.
        is_async: Whether the routine must be awaited.
        name: Template name the unit was first compiled for.
        source: Template source, for code frames.
        filename: Pseudo filename registered in ``linecache``.
        line_map: Template line for each generated line (index = line - 1).
        streamable: False when a handler requires whole-output buffering.
    """

    source_hash: str
    code: str
    routine: Callable[..., Any]
    created_at: float
    is_async: bool = False
    name: str | None = None
    source: str = ""
    filename: str = "<kiln>"
    line_map: tuple[int, ...] = ()
    streamable: bool = True

    def template_line(self, generated_lineno: int) -> int | None:
        """Template line that produced ``generated_lineno``, if any."""
        if 0 < generated_lineno <= len(self.line_map):
            return self.line_map[generated_lineno - 1] or None
        return None

    def locate(self, tb: TracebackType | None) -> int | None:
        """Template line of the innermost traceback frame inside this routine."""
        found = None
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == self.filename:
                found = self.template_line(tb.tb_lineno)
            tb = tb.tb_next
        return found


def unit_filename(name: str | None, source_hash: str, *, streaming: bool = False) -> str:
    suffix = ":stream" if streaming else ""
    return f"<kiln:{name or 'string'}:{source_hash[:12]}{suffix}>"


def build_unit(
    generated: GeneratedRoutine,
    code_obj: CodeType,
    *,
    source: str,
    source_hash: str,
    name: str | None,
    filename: str,
) -> CompiledUnit:
    """Execute the routine definition and wrap it in a CompiledUnit.

    The generated source is registered with ``linecache`` so tracebacks
    through the routine show real lines.
    """
    namespace = dict(STATIC_NAMESPACE)
    namespace["__name__"] = filename
    exec(code_obj, namespace)
    linecache.cache[filename] = (
        len(generated.code),
        None,
        generated.code.splitlines(keepends=True),
        filename,
    )
    return CompiledUnit(
        source_hash=source_hash,
        code=generated.code,
        routine=namespace[ROUTINE_NAME],
        created_at=time.time(),
        is_async=generated.is_async,
        name=name,
        source=source,
        filename=filename,
        line_map=generated.line_map,
        streamable=generated.streamable,
    )
