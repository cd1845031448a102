"""Shared hypothesis strategies for kiln property-based testing.

Provides strategies that generate structurally valid template inputs:

- **Text**: Plain text free of kiln syntax (``@``, ``{``, ``<``)
- **Interpolations**: ``{{ name }}`` and ``{{{ name }}}`` fragments
- **Values**: Strings that stress HTML escaping
- **Paths**: Logical view paths for the namespace resolver

Test modules compose these into property-specific strategies.
"""

from __future__ import annotations

import builtins
import keyword

from hypothesis import strategies as st

# ---------------------------------------------------------------------------
# Text strategies
# ---------------------------------------------------------------------------

# Plain text that contains no template syntax; renders unchanged
plain_text = st.text(
    alphabet=st.characters(
        blacklist_categories=("Cs",),
        blacklist_characters="@{}<\x00",
    ),
    min_size=1,
    max_size=200,
)

identifier = st.from_regex(r"[a-z][a-z0-9_]{0,12}", fullmatch=True).filter(
    lambda name: name not in {"true", "false", "null", "it", "loop"}
    and not name.startswith("end")
    and not hasattr(builtins, name)
    and not keyword.iskeyword(name)
)

escaped_interpolation = identifier.map(lambda name: f"{{{{ {name} }}}}")
raw_interpolation = identifier.map(lambda name: f"{{{{{{ {name} }}}}}}")

template_fragment = st.lists(
    st.one_of(plain_text, escaped_interpolation, raw_interpolation),
    min_size=1,
    max_size=6,
).map("".join)

# Arbitrary text that might stress the parser (fuzz-like)
arbitrary_template_source = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)),
    min_size=0,
    max_size=300,
)

# ---------------------------------------------------------------------------
# Value strategies
# ---------------------------------------------------------------------------

html_unsafe_text = st.text(
    alphabet=st.sampled_from(list("<>&\"'abc /=")),
    min_size=0,
    max_size=40,
)

scalar_values = st.one_of(
    st.integers(min_value=-10_000, max_value=10_000),
    st.text(max_size=30),
    st.booleans(),
)

# ---------------------------------------------------------------------------
# Path strategies
# ---------------------------------------------------------------------------

path_segment = st.from_regex(r"[a-z][a-z0-9_-]{0,10}", fullmatch=True)

dotted_view_path = st.lists(path_segment, min_size=1, max_size=4).map(".".join)
slashed_view_path = st.lists(path_segment, min_size=1, max_size=4).map("/".join)
