"""Top-level decision pipeline: guard, deliberate, settle, persist."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from arbiter.committee.models import AgentWeights
from arbiter.committee.orchestrator import CommitteeOrchestrator
from arbiter.contracts.models import Choice, Contract
from arbiter.coordination.coordinator import DecisionCoordinator
from arbiter.database.repositories import ContractStore, DecisionStore
from arbiter.decision.models import DecisionOutcome, DecisionRecord, DeliberationState
from arbiter.events.bus import DeliberationEventBus
from arbiter.events.collector import MessageCollector
from arbiter.exceptions import ArbiterError, ContractNotFoundError, NotReadyError
from arbiter.settlement.base import SettlementService
from arbiter.utils.helpers import generate_id, utc_now

logger = logging.getLogger(__name__)

PHASE_STATES = {
    "proposing": DeliberationState.PROPOSING,
    "discussion": DeliberationState.DISCUSSING,
    "consensus": DeliberationState.DISCUSSING,
    "synthesizing": DeliberationState.SYNTHESIZING,
}

STATE_PHASES = {
    DeliberationState.IDLE: "idle",
    DeliberationState.PROPOSING: "proposing",
    DeliberationState.DISCUSSING: "discussion",
    DeliberationState.SYNTHESIZING: "consensus",
    DeliberationState.SETTLING: "settling",
}


class DecisionOrchestrator:
    """Decides contract winners through the committee and commits them.

    Every failure is returned as a ``DecisionOutcome`` value; nothing raised
    inside the pipeline escapes ``decide``.
    """

    def __init__(
        self,
        committee: CommitteeOrchestrator,
        contracts: ContractStore,
        decisions: DecisionStore,
        settlement: SettlementService,
        bus: DeliberationEventBus,
        coordinator: Optional[DecisionCoordinator] = None,
        weights: Optional[AgentWeights] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.committee = committee
        self.contracts = contracts
        self.decisions = decisions
        self.settlement = settlement
        self.bus = bus
        self.coordinator = coordinator or DecisionCoordinator()
        self.weights = weights or AgentWeights()
        self._clock = clock
        self._states: Dict[str, DeliberationState] = {}
        self._tasks: Set[asyncio.Task] = set()

    def get_state(self, deliberation_id: str) -> Optional[DeliberationState]:
        return self._states.get(deliberation_id)

    def _set_state(self, deliberation_id: str, state: DeliberationState) -> None:
        previous = self._states.get(deliberation_id)
        if previous is not None and previous.is_terminal:
            # Terminal states are final; late phase callbacks are ignored
            return
        if previous != state:
            self._states[deliberation_id] = state
            logger.debug(f"Deliberation {deliberation_id}: {previous} -> {state.value}")

    async def decide(
        self,
        contract_id: str,
        deliberation_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DecisionOutcome:
        """Run the full decision pipeline for a contract.

        Callers for the same contract queue on its exclusive lock, so at most
        one deliberation per contract is active at a time.

        Args:
            contract_id: Contract to decide
            deliberation_id: Identifier to use. If None, one is generated.
            context: Additional context passed to proposers

        Returns:
            Outcome of the attempt
        """
        deliberation_id = deliberation_id or generate_id("delib")
        self._set_state(deliberation_id, DeliberationState.IDLE)

        try:
            async with self.coordinator.acquire(contract_id):
                return await self._decide_exclusive(contract_id, deliberation_id, context)
        except Exception as e:
            logger.exception(f"Unexpected failure deciding {contract_id}")
            self._set_state(deliberation_id, DeliberationState.FAILED)
            return DecisionOutcome.failed(
                contract_id,
                reason=f"Unexpected error: {e}",
                error_code="internal_error",
                deliberation_id=deliberation_id,
            )

    async def _decide_exclusive(
        self,
        contract_id: str,
        deliberation_id: str,
        context: Optional[Dict[str, Any]],
    ) -> DecisionOutcome:
        existing = self.decisions.find_by_contract_id(contract_id)
        if existing is not None:
            logger.info(f"Contract {contract_id} already decided: {existing.winner_id}")
            self._set_state(deliberation_id, DeliberationState.DONE)
            return DecisionOutcome.failed(
                contract_id,
                reason=f"Contract {contract_id} has already been decided",
                phase="idle",
                error_code="already_decided",
                deliberation_id=deliberation_id,
                winner_id=existing.winner_id,
                decision_id=existing.id,
            )

        collector = MessageCollector(
            self.bus,
            contract_id,
            deliberation_id,
            phase_listener=lambda phase: self._set_state(deliberation_id, PHASE_STATES[phase]),
        )

        try:
            contract = self._load_eligible(contract_id)
            record = await self._run_pipeline(contract, collector, context)
        except ArbiterError as e:
            return self._fail(collector, deliberation_id, str(e), e.phase, e.code)
        except ValueError as e:
            return self._fail(collector, deliberation_id, str(e), None, "invalid_winner")

        self._set_state(deliberation_id, DeliberationState.DONE)
        return DecisionOutcome.succeeded(record)

    def _load_eligible(self, contract_id: str) -> Contract:
        contract = self.contracts.find_by_id(contract_id)
        if contract is None:
            raise ContractNotFoundError(f"Contract {contract_id} not found", phase="idle")

        if not contract.can_decide_winner(self._clock()):
            raise NotReadyError(
                f"Contract {contract_id} is not ready for decision "
                f"(status {contract.status.value}, betting ends {contract.betting_end_time.isoformat()})",
                phase="idle",
            )
        return contract

    async def _run_pipeline(
        self,
        contract: Contract,
        collector: MessageCollector,
        context: Optional[Dict[str, Any]],
    ) -> DecisionRecord:
        result = await self.committee.deliberate(contract, collector, self.weights, context)
        winner_id = result.winner_id

        self._set_state(collector.deliberation_id, DeliberationState.SETTLING)

        # Work on a copy so the stored contract only changes after settlement
        decided = contract.model_copy(deep=True)
        decided.set_winner(winner_id, self._clock())

        choice = Choice.from_party_id(winner_id, contract.party_a.id, contract.party_b.id)
        transaction_ref = await self.settlement.declare_winner(contract.id, choice)

        collector.complete(winner_id)
        record = DecisionRecord.from_deliberation(result, transaction_ref, collector.messages)
        self.decisions.save_decided(record, decided)

        updated_weights = self.weights.apply_outcome(result.final_anchors, winner_id)
        logger.info(
            f"Contract {contract.id} decided: {winner_id} "
            f"(tx {transaction_ref}, weights {updated_weights})"
        )
        return record

    def _fail(
        self,
        collector: MessageCollector,
        deliberation_id: str,
        reason: str,
        phase: Optional[str],
        error_code: str,
    ) -> DecisionOutcome:
        current = self._states.get(deliberation_id, DeliberationState.IDLE)
        phase = phase or STATE_PHASES.get(current, "idle")
        self._set_state(deliberation_id, DeliberationState.FAILED)

        logger.error(f"Decision for {collector.contract_id} failed during {phase}: {reason}")
        collector.fail(reason, phase)

        return DecisionOutcome.failed(
            collector.contract_id,
            reason=reason,
            phase=phase,
            error_code=error_code,
            deliberation_id=deliberation_id,
        )

    def start(self, contract_id: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Start a decision in the background and return its deliberation id at once.

        Progress is published on the event bus; the outcome is logged.
        """
        deliberation_id = generate_id("delib")
        self._set_state(deliberation_id, DeliberationState.IDLE)

        task = asyncio.create_task(self.decide(contract_id, deliberation_id, context))
        self._tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return deliberation_id

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background decision was cancelled")
            return

        outcome = task.result()
        if outcome.success:
            logger.info(f"Background decision for {outcome.contract_id} succeeded: {outcome.winner_id}")
        else:
            logger.warning(
                f"Background decision for {outcome.contract_id} failed "
                f"({outcome.error_code}): {outcome.reason}"
            )

    async def wait_for_background(self) -> None:
        """Wait for every background decision started with ``start``."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
