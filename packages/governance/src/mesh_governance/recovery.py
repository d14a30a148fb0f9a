"""Catch/recovery policy and transition records.

A Transition says which action a state performs and which state follows it.
guard() attaches a CatchPolicy: when the state's action fails with one of the
matched kinds, control moves to the recovery state instead of failing.

The registration workflow uses exactly one kind of guard: "already exists"
means a previous run got this far, so skip ahead to the dependent step.
Re-submitting the same request is therefore safe.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from mesh_shared.failures import FailureKind

from mesh_governance.steps import StepFailure

ALREADY_EXISTS = frozenset({FailureKind.ALREADY_EXISTS})


@dataclass(frozen=True)
class CatchPolicy:
    kinds: frozenset[FailureKind]
    recovery: str

    def handles(self, failure: StepFailure) -> bool:
        return failure.kind in self.kinds


@dataclass(frozen=True)
class Transition:
    action: str
    next: str
    catch: CatchPolicy | None = None


def guard(
    transition: Transition,
    recovery: str,
    kinds: frozenset[FailureKind] = ALREADY_EXISTS,
) -> Transition:
    """Return `transition` with failures of `kinds` redirected to `recovery`."""
    return dataclasses.replace(transition, catch=CatchPolicy(kinds=kinds, recovery=recovery))
