"""Pure request/response handlers for the members/register/verify surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ...protocol.accumulator import GroupAccumulator
from ...protocol.exceptions import ErrorKind, SignalError
from ...protocol.registration import RegistrationCoordinator
from ...protocol.services import ProtocolServices
from ...protocol.verifier import ProofVerifier
from .constants import API_VERSION, ROUTE_MEMBERS, ROUTE_REGISTER, ROUTE_VERIFY
from .errors import ProtocolError
from .messages import MembersQuery, RegisterBody, VerifyBody

logger = logging.getLogger(__name__)

STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.MALFORMED_REQUEST: 400,
    ErrorKind.REGISTRATION_REFUSED: 403,
    ErrorKind.UNKNOWN_GROUP: 404,
    ErrorKind.DUPLICATE_COMMITMENT: 409,
    ErrorKind.GROUP_FULL: 409,
    ErrorKind.NULLIFIER_REUSED: 409,
    ErrorKind.INSUFFICIENT_ANONYMITY_SET: 422,
    ErrorKind.STALE_ROOT: 422,
    ErrorKind.INVALID_PROOF: 422,
    ErrorKind.PROVER_FAILURE: 500,
    ErrorKind.NETWORK_FAILURE: 503,
    ErrorKind.CANCELLED: 503,
}


@dataclass(frozen=True)
class Response:
    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _success(**body: Any) -> Response:
    return Response(200, {"ok": True, "v": API_VERSION, **body})


def error_response(kind: ErrorKind, detail: str = "") -> Response:
    return Response(
        STATUS_BY_KIND.get(kind, 400),
        {"ok": False, "v": API_VERSION, "error": kind.value, "detail": detail},
    )


class SignalAPI:
    """
    Transport-agnostic handlers.

    Each handler takes already-decoded JSON values and returns a Response; it
    never raises for client errors.
    """

    def __init__(
        self,
        accumulator: GroupAccumulator,
        registration: RegistrationCoordinator,
        verifier: ProofVerifier,
    ) -> None:
        self._accumulator = accumulator
        self._registration = registration
        self._verifier = verifier

    @classmethod
    def from_services(cls, services: ProtocolServices) -> "SignalAPI":
        return cls(services.accumulator, services.registration, services.verifier)

    def handle_members(self, params: Mapping[str, Any]) -> Response:
        try:
            query = MembersQuery.from_params(params)
        except ProtocolError as exc:
            return error_response(ErrorKind.MALFORMED_REQUEST, str(exc))
        try:
            snapshot = self._accumulator.snapshot(query.group_id)
        except SignalError as exc:
            return error_response(exc.kind, exc.detail)
        return _success(
            groupId=snapshot.group_id,
            depth=snapshot.depth,
            size=snapshot.size,
            root=snapshot.root.hex(),
            members=[{"commitment": str(member)} for member in snapshot.members],
        )

    def handle_register(self, payload: Any) -> Response:
        try:
            body = RegisterBody.from_payload(payload)
        except ProtocolError as exc:
            return error_response(ErrorKind.MALFORMED_REQUEST, str(exc))
        result = self._registration.register(body.to_request())
        if not result.ok:
            return error_response(result.error, result.detail)
        return _success(groupId=body.group_id, index=result.value)

    def handle_verify(self, payload: Any) -> Response:
        try:
            body = VerifyBody.from_payload(payload)
        except ProtocolError as exc:
            return error_response(ErrorKind.MALFORMED_REQUEST, str(exc))
        result = self._verifier.verify(
            body.proof,
            body.message_bytes,
            group_id=body.group_id,
            commitment=body.commitment,
            claimed_group_size=body.group_size,
        )
        if not result.ok:
            return error_response(result.error, result.detail)
        record = result.value
        return _success(
            groupId=record.group_id,
            nullifierHash=record.nullifier_hash.hex(),
        )

    def handle(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Response:
        """Route one request by method and path."""
        route = (method.upper(), path)
        if route == ("GET", ROUTE_MEMBERS):
            return self.handle_members(params or {})
        if route == ("POST", ROUTE_REGISTER):
            return self.handle_register(body)
        if route == ("POST", ROUTE_VERIFY):
            return self.handle_verify(body)
        logger.debug("No route for %s %s", method, path)
        return Response(404, {"ok": False, "v": API_VERSION, "error": "not_found", "detail": path})
