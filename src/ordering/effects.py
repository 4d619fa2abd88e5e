"""External side effects made while one command is processed.

A command's unit of work commits after its handler has returned, so a
commit failure alone cannot tell whether the inventory ledger already acted.
Code that calls an external system notes each successful call here; the
entry points read the notes back when the commit fails.
"""

from contextlib import contextmanager
from contextvars import ContextVar

_external_effects: ContextVar[list[str] | None] = ContextVar("external_effects", default=None)


@contextmanager
def tracking_external_effects():
    """Collect the effects noted inside the block into the yielded list."""
    effects: list[str] = []
    token = _external_effects.set(effects)
    try:
        yield effects
    finally:
        _external_effects.reset(token)


def note_external_effect(description: str) -> None:
    effects = _external_effects.get()
    if effects is not None:
        effects.append(description)
