"""A transition-table interpreter for sequential workflows.

StateMachine walks a table of Transitions from a start state until it reaches
DONE, awaiting one handler per state. No two states of one machine run at the
same time.

On a StepFailure the current transition's CatchPolicy decides: a handled kind
moves to the recovery state, anything else marks the machine FAILED, records
the failing state, and re-raises. A cancellation request is honoured between
states, never during one.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from mesh_shared.failures import FailureKind

from mesh_governance.recovery import Transition
from mesh_governance.steps import StepFailure

DONE = "Done"
FAILED = "Failed"

Handler = Callable[[], Awaitable[Any]]


class StateMachine:
    def __init__(
        self,
        transitions: Mapping[str, Transition],
        start: str,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        label: str = "",
    ) -> None:
        self.transitions = transitions
        self.start = start
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_requested = cancel_requested or (lambda: False)
        self.label = label
        self.state = start
        self.visited: list[str] = []
        self.recovered: list[str] = []
        self.failed_state: str | None = None

    def _prefix(self) -> str:
        return f"[{self.label}] " if self.label else ""

    async def run(self, handlers: Mapping[str, Handler]) -> None:
        state = self.start
        while state != DONE:
            transition = self.transitions[state]
            self.state = state
            try:
                if self.cancel_requested():
                    raise StepFailure(
                        FailureKind.CANCELLED,
                        transition.action,
                        f"cancellation requested before {state}",
                    )
                self.visited.append(state)
                self.logger.info(f"{self._prefix()}Entering {state} ({transition.action})")
                await handlers[state]()
            except StepFailure as failure:
                catch = transition.catch
                if catch is not None and catch.handles(failure):
                    self.logger.info(
                        f"{self._prefix()}{state} hit {failure.kind.value}, "
                        f"continuing at {catch.recovery}"
                    )
                    self.recovered.append(state)
                    state = catch.recovery
                    continue
                self.logger.error(f"{self._prefix()}{state} failed: {failure}")
                self.failed_state = state
                self.state = FAILED
                raise
            state = transition.next
        self.state = DONE
