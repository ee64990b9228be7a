"""
Signal production.

Builds proving inputs from an identity, a group snapshot and a signal
context, applies the anonymity gate and hands off to the proving engine. No
accumulator or ledger state is touched, so an aborted attempt can simply be
retried with a fresh snapshot.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Optional

import trio

from .binder import SignalBinder
from .config import DEFAULT_PROVER_TIMEOUT
from .exceptions import ErrorKind, ProofGenerationError
from .interfaces import ProofEngine
from .policy import AnonymitySetPolicy
from .results import Result
from .types import GroupSnapshot, Identity, Proof, PublicInputs, SignalContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvingInputs:
    """Everything the engine receives for one proving run."""

    secret: bytes = field(repr=False)
    snapshot: GroupSnapshot
    external_nullifier: bytes
    bound_signal: bytes


class ProofCoordinator:
    """
    Orchestrates proof production behind the anonymity-set gate.

    Args:
        engine: Proving capability
        policy: Anonymity-set policy checked before any proving work
        binder: Message binder (defaults to SignalBinder)
        prover_timeout: Default timeout for produce_signal_async()
    """

    def __init__(
        self,
        engine: ProofEngine,
        policy: AnonymitySetPolicy,
        binder: Optional[SignalBinder] = None,
        *,
        prover_timeout: float = DEFAULT_PROVER_TIMEOUT,
    ) -> None:
        self._engine = engine
        self._policy = policy
        self._binder = binder or SignalBinder()
        self._prover_timeout = prover_timeout

    def build_inputs(
        self, identity: Identity, snapshot: GroupSnapshot, context: SignalContext
    ) -> ProvingInputs:
        return ProvingInputs(
            secret=identity.secret,
            snapshot=snapshot,
            external_nullifier=context.external_nullifier,
            bound_signal=self._binder.bind(context.raw_message),
        )

    def _check(
        self, snapshot: GroupSnapshot, context: SignalContext
    ) -> Optional[Result[Proof]]:
        if context.group_id != snapshot.group_id:
            return Result.failure(
                ErrorKind.MALFORMED_REQUEST,
                f"context group {context.group_id} != snapshot group {snapshot.group_id}",
            )
        if not self._policy.can_signal(snapshot.size):
            logger.info(
                "Refusing to prove for group %d: %d members below threshold %d",
                snapshot.group_id,
                snapshot.size,
                self._policy.threshold,
            )
            return Result.failure(
                ErrorKind.INSUFFICIENT_ANONYMITY_SET,
                f"group has {snapshot.size} members, need {self._policy.threshold}",
            )
        return None

    def produce_signal(
        self, identity: Identity, snapshot: GroupSnapshot, context: SignalContext
    ) -> Result[Proof]:
        """
        Produce a proof that some member of ``snapshot`` signals ``context``.

        The engine is never invoked when the snapshot is below the anonymity
        threshold.

        Returns:
            Result carrying the Proof, or INSUFFICIENT_ANONYMITY_SET,
            MALFORMED_REQUEST or PROVER_FAILURE
        """
        refused = self._check(snapshot, context)
        if refused is not None:
            return refused

        inputs = self.build_inputs(identity, snapshot, context)
        try:
            output = self._engine.prove(
                inputs.secret,
                inputs.snapshot,
                inputs.external_nullifier,
                inputs.bound_signal,
            )
        except ProofGenerationError as exc:
            logger.warning("Prover failed for group %d: %s", snapshot.group_id, exc)
            return Result.failure(ErrorKind.PROVER_FAILURE, str(exc))

        public_inputs = PublicInputs(
            root=snapshot.root,
            nullifier_hash=output.nullifier_hash,
            bound_hash=inputs.bound_signal,
            external_context=context.group_id,
            topic=context.topic,
        )
        return Result.success(Proof(artifact=output.artifact, public_inputs=public_inputs))

    async def produce_signal_async(
        self,
        identity: Identity,
        snapshot: GroupSnapshot,
        context: SignalContext,
        *,
        timeout: Optional[float] = None,
    ) -> Result[Proof]:
        """
        Run produce_signal() on a worker thread with a timeout.

        A timeout yields CANCELLED; the worker thread is abandoned and its
        eventual output discarded.
        """
        refused = self._check(snapshot, context)
        if refused is not None:
            return refused

        limit = self._prover_timeout if timeout is None else timeout
        job = functools.partial(self.produce_signal, identity, snapshot, context)
        result: Optional[Result[Proof]] = None
        with trio.move_on_after(limit) as scope:
            result = await trio.to_thread.run_sync(job, abandon_on_cancel=True)
        if scope.cancelled_caught or result is None:
            logger.warning(
                "Prover for group %d cancelled after %.1fs", snapshot.group_id, limit
            )
            return Result.failure(ErrorKind.CANCELLED, f"prover exceeded {limit}s")
        return result
