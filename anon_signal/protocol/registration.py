"""
Member registration.

Validates the request, checks the admission reference with the external
authority (no accumulator lock is held meanwhile), then inserts the
commitment. Each admission reference admits at most one member; only a
digest of consumed references is kept, written in the member's own
accumulator record.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import Set

import trio

from .accumulator import GroupAccumulator
from .config import DOMAIN_SEPARATORS
from .exceptions import ErrorKind, SignalError
from .interfaces import AdmissionAuthority
from .results import Result
from .types import MemberIndex, RegistrationRequest, short_hex

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 64
MAX_ADMISSION_REF_LENGTH = 512


def ref_digest(admission_ref: str) -> bytes:
    return hashlib.sha3_256(
        DOMAIN_SEPARATORS["admission_ref"] + admission_ref.encode("utf-8")
    ).digest()


def _validate_request(request: RegistrationRequest) -> None:
    username = request.username
    if not isinstance(username, str) or not username.strip():
        raise SignalError(ErrorKind.MALFORMED_REQUEST, "username is required")
    if len(username) > MAX_USERNAME_LENGTH:
        raise SignalError(ErrorKind.MALFORMED_REQUEST, "username too long")
    ref = request.admission_ref
    if not isinstance(ref, str) or not ref:
        raise SignalError(ErrorKind.MALFORMED_REQUEST, "admission reference is required")
    if len(ref) > MAX_ADMISSION_REF_LENGTH:
        raise SignalError(ErrorKind.MALFORMED_REQUEST, "admission reference too long")


class RegistrationCoordinator:
    """
    Admits new members into groups.

    Consumed references are tracked by the accumulator, so they persist and
    replay together with the members they admitted.

    Args:
        accumulator: Target accumulator
        authority: External admission-reference issuer
    """

    def __init__(self, accumulator: GroupAccumulator, authority: AdmissionAuthority) -> None:
        self._accumulator = accumulator
        self._authority = authority
        self._lock = threading.Lock()
        self._pending: Set[bytes] = set()

    def is_consumed(self, admission_ref: str) -> bool:
        return self._accumulator.is_admission_consumed(ref_digest(admission_ref))

    def register(self, request: RegistrationRequest) -> Result[MemberIndex]:
        """
        Admit ``request.commitment`` into ``request.group_id``.

        Returns:
            Result carrying the member index, or MALFORMED_REQUEST,
            UNKNOWN_GROUP, REGISTRATION_REFUSED, NETWORK_FAILURE,
            DUPLICATE_COMMITMENT, GROUP_FULL

        Raises:
            StorageError: If the member could not be persisted; the group is
                unchanged and the reference stays unused
        """
        try:
            _validate_request(request)
            commitment = request.parsed_commitment()
        except SignalError as exc:
            return Result.from_error(exc)
        if not self._accumulator.has_group(request.group_id):
            return Result.failure(
                ErrorKind.UNKNOWN_GROUP, f"group {request.group_id} does not exist"
            )

        digest = ref_digest(request.admission_ref)
        with self._lock:
            if digest in self._pending or self._accumulator.is_admission_consumed(digest):
                logger.info("Admission reference %s already used", short_hex(digest))
                return Result.failure(
                    ErrorKind.REGISTRATION_REFUSED, "admission reference already used"
                )
            self._pending.add(digest)

        try:
            return self._admit(request, commitment, digest)
        finally:
            with self._lock:
                self._pending.discard(digest)

    def _admit(self, request, commitment, digest: bytes) -> Result[MemberIndex]:
        try:
            valid = self._authority.is_valid_ref(request.admission_ref)
        except SignalError as exc:
            logger.warning("Admission check failed: %s", exc)
            return Result.from_error(exc)
        except OSError as exc:
            # covers TimeoutError and connection errors from remote authorities
            logger.warning("Admission authority unreachable: %s", exc)
            return Result.failure(
                ErrorKind.NETWORK_FAILURE, f"admission authority unreachable: {exc}"
            )
        if not valid:
            logger.info("Admission reference %s refused", short_hex(digest))
            return Result.failure(
                ErrorKind.REGISTRATION_REFUSED, "admission reference not valid"
            )

        try:
            index = self._accumulator.add_member(
                request.group_id, commitment, admission=digest
            )
        except SignalError as exc:
            return Result.from_error(exc)
        logger.info("Registered member %d in group %d", index, request.group_id)
        return Result.success(index)

    async def register_async(self, request: RegistrationRequest) -> Result[MemberIndex]:
        """register() on a worker thread so the admission check cannot stall the loop."""
        return await trio.to_thread.run_sync(self.register, request)
