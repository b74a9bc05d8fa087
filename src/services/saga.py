"""
Minimal saga runner.

A saga is an ordered list of named steps. Each step may register a
compensation; when a step fails, compensations of the steps that already
completed run in reverse order and the original error is re-raised.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger()

StepAction = Callable[[Dict[str, Any]], Any]
StepCompensation = Callable[[Dict[str, Any]], None]


@dataclass
class SagaStep:
    """
    One step of a saga.

    Attributes:
        name: Step name; the action's return value is stored in the context
            under this key
        action: Callable receiving the shared context
        compensate: Optional undo, called with the context if a later step fails
    """
    name: str
    action: StepAction
    compensate: Optional[StepCompensation] = None


@dataclass
class Saga:
    name: str
    steps: List[SagaStep] = field(default_factory=list)

    def step(
        self,
        name: str,
        action: StepAction,
        compensate: Optional[StepCompensation] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name=name, action=action, compensate=compensate))
        return self

    def run(self, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute every step in order.

        Returns:
            The context, holding each step's result under its name

        Raises:
            Whatever the failing step raised, after compensation
        """
        context = context if context is not None else {}
        completed: List[SagaStep] = []

        for saga_step in self.steps:
            try:
                context[saga_step.name] = saga_step.action(context)
            except Exception as e:
                logger.warning("saga_step_failed", saga=self.name, step=saga_step.name, error=str(e))
                self._compensate(completed, context)
                raise
            completed.append(saga_step)

        return context

    def _compensate(self, completed: List[SagaStep], context: Dict[str, Any]) -> None:
        for saga_step in reversed(completed):
            if saga_step.compensate is None:
                continue
            try:
                saga_step.compensate(context)
                logger.info("saga_step_compensated", saga=self.name, step=saga_step.name)
            except Exception as e:
                # Keep unwinding; the original failure is what the caller sees
                logger.error(
                    "saga_compensation_failed",
                    saga=self.name,
                    step=saga_step.name,
                    error=str(e),
                )
