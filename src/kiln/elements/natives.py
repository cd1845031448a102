"""``<x-name>`` component elements.

Every ``x-*`` tag renders the view ``components.<name>`` with its
attributes as locals. ``<x-slot name="...">`` children become named
slots and the remaining content becomes the ``default`` slot, the same
contract ``@component`` uses. A slot inside a block such as ``@if`` is
filled only when the block runs::

    <x-card title="Stats" count={len(items)}>
        <x-slot name="footer"><a href="/stats">More</a></x-slot>
        <p>Body</p>
    </x-card>

Dotted tags nest: ``<x-forms.input>`` renders ``components.forms.input``.
"""

from __future__ import annotations

from kiln.compiler.handler import ElementContext
from kiln.directives.includes import include_call
from kiln.environment.registry import ElementDefinition

DEFAULT_PREFIX = "components"


def _fill_slot(api: ElementContext) -> None:
    """Fill a named slot of the enclosing component from inside a block."""
    owner = api.enclosing_element("slots")
    name = api.attribute("name")
    if owner is None or name is None:
        raise api.error(f"<{api.tag}> is only valid inside a component element")
    with api.capture() as content:
        api.render_children()
    api.raw(f"{owner.data['slots']}[{name}] = {content}")


def component_element(prefix: str = DEFAULT_PREFIX, tag: str = "x-*") -> ElementDefinition:
    """Element definition rendering ``<x-name>`` as the view ``{prefix}.name``."""

    def on_call(api: ElementContext) -> None:
        if api.tag == api.engine.config.slot_tag:
            _fill_slot(api)
            return
        path = f"{prefix}.{api.wildcard}"
        slots = api.uid("slots")
        api.data["slots"] = slots
        api.raw(f"{slots} = {{}}")
        for name in api.slots:
            with api.capture() as content:
                api.render_slot(name)
            api.raw(f"{slots}[{name!r}] = {content}")
        if api.inner:
            with api.capture() as default:
                api.render_children()
            api.raw(f"{slots}.setdefault('default', {default})")
        locals = f"{{**{api.attributes_code()}, 'slots': {slots}}}"
        api.emit(include_call(api, repr(path), locals, soft=False))

    on_call.__name__ = "component"
    return ElementDefinition(
        tag,
        on_call,
        description=f"Renders the view '{prefix}.<name>' with attributes as locals.",
        example='<x-alert type="error">Something went wrong</x-alert>',
    )
