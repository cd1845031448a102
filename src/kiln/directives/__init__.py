"""Native directives shipped with kiln.

They are registered through the ``natives`` plugin, which every
``Engine`` loads first unless created with ``natives=False``. Third-party
plugins can override any of them by registering a directive of the
same name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.directives import (
    attributes,
    control_flow,
    deferred,
    includes,
    layout,
    loops,
    stacks,
    variables,
)
from kiln.environment.plugins import FunctionPlugin

if TYPE_CHECKING:
    from kiln.environment.core import Engine
    from kiln.environment.registry import DirectiveDefinition

__all__ = ["NATIVE_DIRECTIVES", "load_natives", "natives"]

NATIVE_DIRECTIVES: tuple[DirectiveDefinition, ...] = (
    *control_flow.DIRECTIVES,
    *loops.DIRECTIVES,
    *variables.DIRECTIVES,
    *includes.DIRECTIVES,
    *layout.DIRECTIVES,
    *stacks.DIRECTIVES,
    *deferred.DIRECTIVES,
    *attributes.DIRECTIVES,
)


def load_natives(engine: Engine, options: Any = None) -> None:
    from kiln.elements import register_elements

    for definition in NATIVE_DIRECTIVES:
        engine.directive(definition)
    register_elements(engine, options)


natives = FunctionPlugin("kiln:natives", load_natives, sort=0)
