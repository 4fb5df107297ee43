"""Atomic-or-saga execution strategy.

Composite operations first try one all-in-one RPC. When the backend does
not expose it, or it fails, the operation runs as a saga: ordered steps,
each optionally paired with a compensating action. On a step failure the
completed steps are compensated in reverse order, best effort, and the
original failure propagates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.config import Settings, get_cached_settings
from services.data_actions import DataActions

logger = logging.getLogger(__name__)

StepAction = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: StepAction
    compensate: Optional[StepAction] = None


@dataclass
class Saga:
    """Ordered steps sharing a state dict; step results are stored under the step name."""

    name: str
    steps: List[SagaStep] = field(default_factory=list)

    def add_step(self, name: str, action: StepAction, compensate: Optional[StepAction] = None) -> "Saga":
        self.steps.append(SagaStep(name=name, action=action, compensate=compensate))
        return self

    async def run(self, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        state = state if state is not None else {}
        completed: List[SagaStep] = []
        for step in self.steps:
            try:
                state[step.name] = await step.action(state)
            except Exception as e:
                logger.info(f"Saga {self.name} failed at step {step.name}: {e}")
                await self._compensate(completed, state)
                raise
            completed.append(step)
        return state

    async def _compensate(self, completed: List[SagaStep], state: Dict[str, Any]) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                await step.compensate(state)
            except Exception as e:
                # Not retried; the caller sees the original failure
                logger.warning(f"Compensation for {self.name}.{step.name} failed: {e}")


@dataclass
class StrategyOutcome:
    data: Any
    strategy: str  # "atomic" or "saga"


async def run_atomic_or_saga(
    actions: DataActions,
    rpc_name: str,
    rpc_params: Dict[str, Any],
    fallback: Callable[[], Awaitable[Any]],
    settings: Optional[Settings] = None,
    use_atomic: bool = True,
) -> StrategyOutcome:
    """Try ``rpc_name`` once, then ``fallback``.

    An unavailable or failing RPC is logged at debug level and never
    surfaced; only the fallback's failure reaches the caller.
    """
    settings = settings or get_cached_settings()
    if use_atomic and settings.PREFER_ATOMIC_RPC:
        try:
            result = await actions.rpc(rpc_name, rpc_params)
        except Exception as e:
            logger.debug(f"Atomic {rpc_name} raised, falling back: {e}")
        else:
            if result.ok and result.data is not None:
                return StrategyOutcome(data=result.data, strategy="atomic")
            reason = "unavailable" if result.unavailable else result.error
            logger.debug(f"Atomic {rpc_name} not used ({reason}), falling back")

    return StrategyOutcome(data=await fallback(), strategy="saga")
