"""
State-machine value objects.

A lifecycle is declared once as a ``Workflow`` (states plus allowed
transitions) instead of being spread across status comparisons in the
services.  Pure data, no I/O.  A definition that names an unknown state or
leaves a terminal state is rejected when it is constructed.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Guard:
    """Named precondition attached to a transition.  Evaluated by the service, not here."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    _index: dict[tuple[str, str], tuple[Transition, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(f"{self.name}: initial state {self.initial_state!r} not in states")

        index: dict[tuple[str, str], list[Transition]] = {}
        for transition in self.transitions:
            edge = f"{transition.action} {transition.from_state}->{transition.to_state}"
            if not {transition.from_state, transition.to_state} <= known:
                raise ValueError(f"{self.name}: {edge} references unknown state")
            if transition.from_state in self.terminal_states:
                raise ValueError(f"{self.name}: {edge} leaves terminal state")
            index.setdefault((transition.from_state, transition.action), []).append(transition)

        object.__setattr__(self, "_index", {k: tuple(v) for k, v in index.items()})

    def targets(self, state: str, action: str) -> tuple[Transition, ...]:
        """Transitions that ``action`` may take from ``state`` (empty when illegal)."""
        return self._index.get((state, action), ())

    def allows(self, state: str, action: str) -> bool:
        return bool(self.targets(state, action))

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
