"""Page layout directives: @define / @defined and the Blade-style aliases.

``@define(name)`` records a block of content under a name for the whole
document; ``@defined(name)`` writes it wherever it appears, even when
the definition comes later (an included view can define the page
title that the layout already placed). The block of ``@defined`` is
the fallback for a name that was never defined::

    <title>@defined('title')Untitled@end</title>
    ...
    @define('title'){{ post.title }} | Blog@end

``@layout`` and ``@extends`` are spellings of ``@component``, and
``@section`` of ``@slot``::

    @extends('layouts.main')
        @section('sidebar')<nav>...</nav>@end
        <article>...</article>
    @end
"""

from __future__ import annotations

from dataclasses import replace

from kiln.compiler.handler import DirectiveContext
from kiln.directives.includes import COMPONENT, SLOT
from kiln.environment.registry import DirectiveDefinition


def _define(api: DirectiveContext) -> None:
    name = api.expression(api.param("name"))
    with api.capture() as content:
        api.render_children()
    api.raw(f"{api.ctx}.define({name}, {content})")


def _defined(api: DirectiveContext) -> None:
    # Definitions later in the document are filled in once it is complete
    api.require_buffering()
    name = api.expression(api.param("name"))
    fallback = "''"
    if api.children:
        with api.capture() as fallback:
            api.render_children()
    api.raw(f"_kl_append({api.ctx}.defined({name}, {fallback}))")


DIRECTIVES = (
    DirectiveDefinition(
        "define",
        _define,
        params=["name:str"],
        children=True,
        description="Records a named block of content for @defined.",
        example="@define('title')\n  {{ post.title }} | Blog\n@end",
    ),
    DirectiveDefinition(
        "defined",
        _defined,
        params=["name:str"],
        children="auto",
        description="Writes the content defined under a name, or its own block as a fallback.",
        example="<title>@defined('title')Untitled@end</title>",
    ),
    replace(
        SLOT,
        name="section",
        description="Alias of @slot.",
        example="@section('sidebar')\n  <nav>...</nav>\n@end",
    ),
    replace(
        COMPONENT,
        name="layout",
        description="Alias of @component, for wrapping a page in a layout view.",
        example="@layout('layouts.main')\n  <article>...</article>\n@end",
    ),
    replace(
        COMPONENT,
        name="extends",
        description="Alias of @component, for pages built on a parent view.",
        example="@extends('layouts.main')\n  @section('sidebar')...@end\n@end",
    ),
)
