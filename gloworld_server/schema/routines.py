"""
Routine registry for Gloworld.

Routines are the named Python callables that installed rules refer to:
- Predicates, called by policies to decide whether a row is accessible
- Trigger functions, called by triggers inside the mutating transaction

A policy or trigger stored in the catalog names its routines; the registry
resolves those names at evaluation time. The bootstrap applier installs a
routine ("replace function by name") before any rule that calls it.

Invariants:
    - Routine names are unique
    - Registry is mutable during startup, frozen before serving
    - A routine's fingerprint changes when its name, kind or version changes

How to change safely:
    - Bump the version when a routine's behavior changes so bootstrap
      re-records it
    - Never rename a routine that installed rules still reference
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .types import definition_digest

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""

    pass


class DuplicateRoutineError(Exception):
    """Raised when a routine name is registered twice."""

    pass


class RoutineKind(str, Enum):
    PREDICATE = "predicate"
    TRIGGER = "trigger"


@dataclass(frozen=True)
class RoutineDef:
    """A named routine.

    Attributes:
        name: Stable routine name referenced by rules
        kind: Predicate or trigger function
        handler: The callable
        version: Behavior version, part of the fingerprint
        description: Human-readable description
    """

    name: str
    kind: RoutineKind
    handler: Callable[..., Any]
    version: int = 1
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "version": self.version,
            "handler": f"{self.handler.__module__}.{self.handler.__qualname__}",
        }

    def fingerprint(self) -> str:
        return definition_digest(self.to_dict())


class RoutineRegistry:
    """Registry of routines by name.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
    """

    def __init__(self) -> None:
        self._routines: dict[str, RoutineDef] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, routine: RoutineDef) -> None:
        """Register a routine.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRoutineError: If the name is taken
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register routine '{routine.name}': registry is frozen"
                )
            if routine.name in self._routines:
                raise DuplicateRoutineError(f"Routine '{routine.name}' already registered")
            self._routines[routine.name] = routine
            logger.debug(f"Registered routine: {routine.name} ({routine.kind.value})")

    def get(self, name: str, kind: RoutineKind | None = None) -> RoutineDef | None:
        routine = self._routines.get(name)
        if routine is not None and kind is not None and routine.kind != kind:
            return None
        return routine

    def __contains__(self, name: str) -> bool:
        return name in self._routines

    def __iter__(self) -> Iterator[RoutineDef]:
        yield from sorted(self._routines.values(), key=lambda r: r.name)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True
            logger.info(f"Routine registry frozen with {len(self._routines)} routines")
