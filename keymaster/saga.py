"""Ordered forward steps paired with compensating steps.

The entity and policy stores have no multi-object transaction, so multi-step
operations are expressed as a saga: when a forward step fails, the compensations
of the steps that already completed run in reverse order and the original error
is re-raised.
"""

from __future__ import annotations
from typing import Any, Callable, Optional
from dataclasses import dataclass, field

from keymaster.log import logger


@dataclass
class SagaStep:
    name: str
    forward: Callable[[], Any]
    compensate: Optional[Callable[[], Any]] = None


@dataclass
class Saga:
    """Run steps in order, unwinding completed steps on the first failure."""

    name: str
    steps: list[SagaStep] = field(default_factory=list)
    completed: list[SagaStep] = field(default_factory=list)

    def add_step(
        self,
        name: str,
        forward: Callable[[], Any],
        compensate: Optional[Callable[[], Any]] = None,
    ) -> Saga:
        self.steps.append(SagaStep(name, forward, compensate))
        return self

    def run(self) -> list[Any]:
        """Execute every forward step.

        Returns:
            The results of the forward steps, in order

        Raises:
            Exception: The error of the failed forward step, after compensation
        """
        results = []
        for step in self.steps:
            try:
                results.append(step.forward())
            except Exception as e:
                logger.warning(f"{self.name}: step '{step.name}' failed ({e}), compensating")
                self._compensate()
                raise
            self.completed.append(step)
        return results

    def _compensate(self) -> None:
        for step in reversed(self.completed):
            if step.compensate is None:
                continue
            try:
                step.compensate()
                logger.info(f"{self.name}: compensated step '{step.name}'")
            except Exception as e:
                # a failed compensation must not mask the original error
                logger.error(f"{self.name}: compensation for step '{step.name}' failed: {e}")
        self.completed.clear()
