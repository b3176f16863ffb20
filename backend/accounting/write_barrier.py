# accounting/write_barrier.py
"""
Write barrier for accounting lines.

Saving or deleting a line without moving the sub-account balance breaks
the ledger invariant, so line writes are only allowed while the ledger has
pushed its write context.
"""

from contextlib import contextmanager
import threading


_state = threading.local()


def _context_stack() -> list[str]:
    stack = getattr(_state, "write_context_stack", None)
    if stack is None:
        stack = []
        _state.write_context_stack = stack
    return stack


def current_write_context() -> str | None:
    stack = _context_stack()
    return stack[-1] if stack else None


def write_context_allowed(allowed_contexts: set[str]) -> bool:
    return current_write_context() in allowed_contexts


@contextmanager
def _push_write_context(name: str):
    stack = _context_stack()
    stack.append(name)
    try:
        yield
    finally:
        stack.pop()


@contextmanager
def ledger_writes_allowed():
    with _push_write_context("ledger"):
        yield

