"""
Authoritative signal verification.

Checks run cheapest first and each failure is terminal:

1. root      - proof root is the current root or a retained recent root
2. anonymity - current group size (not the client's claim) meets the threshold
3. proof     - message binding, context, then the engine's verify()
4. replay    - atomic compare-and-insert of the nullifier

Side-effect hooks run only after all four pass.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .accumulator import GroupAccumulator
from .binder import SignalBinder
from .config import NULLIFIER_SCOPES
from .exceptions import ErrorKind
from .interfaces import AcceptanceHook, ProofEngine
from .nullifiers import NullifierLedger
from .policy import AnonymitySetPolicy
from .results import Result
from .types import Commitment, GroupId, NullifierRecord, Proof, short_hex

logger = logging.getLogger(__name__)


class ProofVerifier:
    """
    Server-side gate for submitted signals.

    Args:
        accumulator: Source of current and recent roots and group sizes
        ledger: Nullifier ledger; this verifier is its only writer
        engine: Verifying capability
        policy: Anonymity-set policy applied to the current group size
        binder: Message binder (defaults to SignalBinder)
        root_window: Number of recent roots accepted (defaults to the
            accumulator's full retained history)
        nullifier_scope: ``"group"`` or ``"topic"``
        hooks: Side effects run once per accepted signal
    """

    def __init__(
        self,
        accumulator: GroupAccumulator,
        ledger: NullifierLedger,
        engine: ProofEngine,
        policy: AnonymitySetPolicy,
        binder: Optional[SignalBinder] = None,
        *,
        root_window: Optional[int] = None,
        nullifier_scope: str = "group",
        hooks: Sequence[AcceptanceHook] = (),
    ) -> None:
        if nullifier_scope not in NULLIFIER_SCOPES:
            raise ValueError(f"invalid nullifier scope {nullifier_scope!r}")
        window = accumulator.root_history if root_window is None else root_window
        if window < 1:
            raise ValueError("root_window must be >= 1")
        self._accumulator = accumulator
        self._ledger = ledger
        self._engine = engine
        self._policy = policy
        self._binder = binder or SignalBinder()
        self._root_window = window
        self._scope = nullifier_scope
        self._hooks = list(hooks)

    def add_hook(self, hook: AcceptanceHook) -> None:
        self._hooks.append(hook)

    def _reject(self, group_id: GroupId, kind: ErrorKind, detail: str) -> Result[NullifierRecord]:
        logger.info("Rejected signal for group %d: %s (%s)", group_id, kind.value, detail)
        return Result.failure(kind, detail)

    def _check_context(self, proof: Proof) -> Optional[str]:
        topic = proof.public_inputs.topic
        if self._scope == "group" and topic:
            return "topic not allowed in group nullifier scope"
        if self._scope == "topic" and not topic:
            return "topic required in topic nullifier scope"
        return None

    def verify(
        self,
        proof: Proof,
        message: bytes,
        *,
        group_id: Optional[GroupId] = None,
        commitment: Optional[Commitment] = None,
        claimed_group_size: Optional[int] = None,
    ) -> Result[NullifierRecord]:
        """
        Verify ``proof`` as a signal of ``message``.

        Args:
            proof: Submitted proof
            message: Raw message bytes the proof must be bound to
            group_id: Expected group; defaults to the proof's external context
            commitment: Submitter's commitment, forwarded to hooks only
            claimed_group_size: Client-observed size; logged, never trusted

        Returns:
            Result carrying the new NullifierRecord, or one of UNKNOWN_GROUP,
            STALE_ROOT, INSUFFICIENT_ANONYMITY_SET, INVALID_PROOF,
            NULLIFIER_REUSED

        Raises:
            StorageError: If the acceptance could not be persisted
        """
        public_inputs = proof.public_inputs
        if group_id is None:
            group_id = public_inputs.external_context
        if public_inputs.external_context != group_id:
            return self._reject(group_id, ErrorKind.INVALID_PROOF, "proof bound to another group")
        if not self._accumulator.has_group(group_id):
            return self._reject(group_id, ErrorKind.UNKNOWN_GROUP, f"group {group_id} does not exist")

        view = self._accumulator.view(group_id)

        if public_inputs.root not in view.roots[: self._root_window]:
            return self._reject(
                group_id,
                ErrorKind.STALE_ROOT,
                f"root {short_hex(public_inputs.root)} not among {self._root_window} recent roots",
            )

        if claimed_group_size is not None and claimed_group_size != view.size:
            logger.debug(
                "Group %d: client claimed size %s, actual %d",
                group_id,
                claimed_group_size,
                view.size,
            )
        if not self._policy.can_signal(view.size):
            return self._reject(
                group_id,
                ErrorKind.INSUFFICIENT_ANONYMITY_SET,
                f"group has {view.size} members, need {self._policy.threshold}",
            )

        if self._binder.bind(message) != public_inputs.bound_hash:
            return self._reject(group_id, ErrorKind.INVALID_PROOF, "proof not bound to message")
        context_error = self._check_context(proof)
        if context_error is not None:
            return self._reject(group_id, ErrorKind.INVALID_PROOF, context_error)
        try:
            valid = bool(self._engine.verify(proof.artifact, public_inputs))
        except Exception:  # noqa: BLE001
            logger.exception("Proof engine %s raised during verify", self._engine.backend_name)
            valid = False
        if not valid:
            return self._reject(group_id, ErrorKind.INVALID_PROOF, "proof does not verify")

        record = NullifierRecord(
            group_id=group_id,
            context=public_inputs.topic,
            nullifier_hash=public_inputs.nullifier_hash,
            accepted_at_root=public_inputs.root,
        )
        if not self._ledger.try_accept(record):
            return self._reject(group_id, ErrorKind.NULLIFIER_REUSED, "nullifier already accepted")

        logger.info(
            "Accepted signal in group %d (nullifier %s)",
            group_id,
            short_hex(record.nullifier_hash),
        )
        self._run_hooks(commitment, message)
        return Result.success(record)

    def _run_hooks(self, commitment: Optional[Commitment], message: bytes) -> None:
        # acceptance is already durable; a failing hook cannot undo it
        for hook in self._hooks:
            try:
                hook.on_accepted(commitment, message)
            except Exception:  # noqa: BLE001
                logger.exception("Acceptance hook %r failed", hook)
