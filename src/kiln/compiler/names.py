"""AST analysis of generated routines."""

from __future__ import annotations

import ast

INTERNAL_PREFIX = "_kl_"


def routine_body(tree: ast.Module) -> list[ast.stmt]:
    """Statements of the single routine definition in ``tree``."""
    func = tree.body[0]
    assert isinstance(func, ast.FunctionDef | ast.AsyncFunctionDef)
    return func.body


def free_names(tree: ast.Module, exclude: frozenset[str] = frozenset()) -> list[str]:
    """Names referenced by a routine, in order of first appearance.

    Internal ``_kl_`` names and ``exclude`` are skipped. Every remaining
    name is pre-bound from the invocation context before the body runs,
    which is what lets template expressions refer to locals and globals
    as plain Python names.
    """
    seen: dict[str, None] = {}
    for statement in routine_body(tree):
        for node in ast.walk(statement):
            if isinstance(node, ast.Name):
                name = node.id
                if name.startswith(INTERNAL_PREFIX) or name in exclude:
                    continue
                seen.setdefault(name, None)
    return list(seen)


def uses_await(tree: ast.Module) -> bool:
    """True when the routine body suspends (``await``, ``async for``/``with``)."""
    for statement in routine_body(tree):
        for node in ast.walk(statement):
            if isinstance(node, ast.Await | ast.AsyncFor | ast.AsyncWith):
                return True
    return False
