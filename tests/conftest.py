"""Pytest configuration and fixtures for kiln tests."""

import pytest

from kiln import DictResolver, Engine

VIEWS = {
    "/views/header.kiln": "<header>{{ title }}</header>",
    "/views/partials/nav.kiln": "<nav>@for(item in items){{ item }};@end</nav>",
    "/views/components/card.kiln": (
        "<div class=\"card\"><h2>{{ title }}</h2>@yield('default')"
        "<footer>@yield('footer', 'No footer')</footer></div>"
    ),
    "/views/components/alert.kiln": '<p class="alert-{{ type }}">@yield(\'default\')</p>',
    "/views/layouts/main.kiln": "<head>@stack('styles')</head><body>@yield('default')</body>",
}


@pytest.fixture
def resolver():
    """In-memory resolver holding the standard test views."""
    return DictResolver(VIEWS)


@pytest.fixture
def engine(resolver):
    """Engine with natives and a ``~`` namespace over ``/views``."""
    engine = Engine(resolver=resolver)
    engine.namespace("~", "/views")
    return engine


@pytest.fixture
def silent_engine(resolver):
    """Engine that propagates errors instead of rendering an error page."""
    engine = Engine(resolver=resolver, silent=True)
    engine.namespace("~", "/views")
    return engine


@pytest.fixture
def bare_engine():
    """Engine without native directives or elements."""
    return Engine(natives=False, resolver=DictResolver())


def assert_html_equal(result: str, expected: str) -> None:
    """Assert rendered output equals expected, normalizing whitespace.

    Args:
        result: The actual rendering result.
        expected: The expected output.
    """
    actual_normalized = " ".join(result.split())
    expected_normalized = " ".join(expected.split())
    assert actual_normalized == expected_normalized, (
        f"Render output mismatch:\n"
        f"  Actual: {actual_normalized!r}\n"
        f"  Expected: {expected_normalized!r}"
    )
