"""Result type for expected failures.

Pipeline stages return ``Ok(value)`` or ``Err(error)`` instead of raising, so
that one component's failure is a value the orchestrator can record rather
than an exception unwinding through sibling work.

Usage:
    match resolver.resolve(spec):
        case Ok(release):
            print(release.version)
        case Err(error):
            print(error.kind)

Narrow with ``isinstance(result, Err)`` when only the failure path matters.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["Ok", "Err", "Result"]


@dataclass(frozen=True, slots=True)
class Ok[T]:
    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err[E]:
    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


type Result[T, E] = Ok[T] | Err[E]
