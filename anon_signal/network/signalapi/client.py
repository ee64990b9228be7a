"""Client utilities for registering and signalling through the request surface."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, TypeVar

import trio

from ...protocol.config import DEFAULT_DEPTH, DEFAULT_FETCH_BACKOFF, DEFAULT_FETCH_RETRIES
from ...protocol.coordinator import ProofCoordinator
from ...protocol.exceptions import ErrorKind, SignalError
from ...protocol.identity import IdentityPort
from ...protocol.results import Result
from ...protocol.types import GroupSnapshot, SignalContext
from .constants import ROUTE_MEMBERS, ROUTE_REGISTER, ROUTE_VERIFY
from .errors import ProtocolError
from .handler import Response, SignalAPI
from .messages import RegisterBody, VerifyBody, parse_member_list

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Response:
        ...


class LocalTransport:
    """Routes requests straight into an in-process SignalAPI."""

    def __init__(self, api: SignalAPI) -> None:
        self._api = api

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Response:
        await trio.lowlevel.checkpoint()
        return self._api.handle(method, path, params=params, body=body)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = DEFAULT_FETCH_RETRIES,
    backoff: float = DEFAULT_FETCH_BACKOFF,
) -> T:
    """
    Await ``operation`` and retry retryable SignalErrors.

    The delay starts at ``backoff`` seconds and doubles per attempt. Errors
    that are not retryable propagate immediately.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except SignalError as exc:
            if not exc.kind.retryable or attempt >= retries:
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.info("Retrying after %s (attempt %d/%d, %.2fs)", exc.kind.value, attempt, retries, delay)
            await trio.sleep(delay)


@dataclass(frozen=True)
class SignalSession:
    """
    Caller-held group selection passed into every client call.

    Attributes:
        group_id: Group to register into and signal within
        depth: Tree depth the group was created with
        topic: Topic for per-topic nullifier scope, empty for group scope
    """

    group_id: int
    depth: int = DEFAULT_DEPTH
    topic: str = ""


def _result_from_response(response: Response) -> Result[Dict[str, Any]]:
    if response.ok:
        return Result.success(response.body)
    code = response.body.get("error")
    detail = str(response.body.get("detail", ""))
    try:
        kind = ErrorKind(code)
    except ValueError:
        kind = ErrorKind.NETWORK_FAILURE if response.status >= 500 else ErrorKind.MALFORMED_REQUEST
        detail = detail or f"HTTP {response.status}"
    return Result.failure(kind, detail)


class SignalClient:
    """
    Member-side flow: register a commitment, then signal anonymously.

    Args:
        transport: Request transport
        coordinator: Local proof coordinator (holds the anonymity policy)
        retries: Retries for transient membership fetch and registration
            failures
        backoff: Initial retry delay in seconds
        prover_timeout: Timeout for the off-thread proving step
    """

    def __init__(
        self,
        transport: Transport,
        coordinator: ProofCoordinator,
        *,
        retries: int = DEFAULT_FETCH_RETRIES,
        backoff: float = DEFAULT_FETCH_BACKOFF,
        prover_timeout: Optional[float] = None,
    ) -> None:
        self._transport = transport
        self._coordinator = coordinator
        self._retries = retries
        self._backoff = backoff
        self._prover_timeout = prover_timeout

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Response:
        try:
            response = await self._transport.request(method, path, params=params, body=body)
        except (OSError, trio.TooSlowError) as exc:
            raise SignalError(ErrorKind.NETWORK_FAILURE, str(exc)) from exc
        if response.status >= 500 and response.body.get("error") in (
            None,
            ErrorKind.NETWORK_FAILURE.value,
        ):
            raise SignalError(ErrorKind.NETWORK_FAILURE, f"HTTP {response.status}")
        return response

    async def fetch_snapshot(self, session: SignalSession) -> GroupSnapshot:
        """
        Fetch and validate the member list, then rebuild the group locally.

        Raises:
            SignalError: NETWORK_FAILURE after retries, MALFORMED_REQUEST for
                an invalid member list or one that does not rebuild the
                server's root, or the server's error kind
        """

        async def _fetch() -> Response:
            return await self._send("GET", ROUTE_MEMBERS, params={"groupId": session.group_id})

        response = await retry_with_backoff(_fetch, retries=self._retries, backoff=self._backoff)
        result = _result_from_response(response)
        if not result.ok:
            raise SignalError(result.error, result.detail)
        try:
            members = parse_member_list(result.value)
        except ProtocolError as exc:
            raise SignalError(ErrorKind.MALFORMED_REQUEST, str(exc)) from exc
        try:
            snapshot = GroupSnapshot.from_members(session.group_id, session.depth, members)
        except ValueError as exc:
            raise SignalError(ErrorKind.MALFORMED_REQUEST, str(exc)) from exc
        if snapshot.root.hex() != result.value.get("root"):
            raise SignalError(
                ErrorKind.MALFORMED_REQUEST,
                f"member list does not rebuild the group root "
                f"(session depth {session.depth}, group depth {result.value.get('depth')})",
            )
        return snapshot

    async def register(
        self,
        session: SignalSession,
        username: str,
        identity_port: IdentityPort,
        challenge: bytes,
        admission_ref: str,
    ) -> Result[int]:
        """
        Derive an identity and register only its commitment.

        NETWORK_FAILURE is retried with backoff; the server changes nothing
        when it reports one, so resending the same reference is safe.
        """
        commitment = identity_port.commitment_for(challenge)
        body = RegisterBody(
            username=username,
            group_id=session.group_id,
            commitment=commitment,
            admission_ref=admission_ref,
        )

        async def _post() -> Response:
            return await self._send("POST", ROUTE_REGISTER, body=body.to_payload())

        try:
            response = await retry_with_backoff(_post, retries=self._retries, backoff=self._backoff)
        except SignalError as exc:
            return Result.from_error(exc)
        return _result_from_response(response).map(lambda payload: payload["index"])

    async def signal(
        self,
        session: SignalSession,
        identity_port: IdentityPort,
        challenge: bytes,
        message: str,
    ) -> Result[Dict[str, Any]]:
        """
        Prove membership against a fresh snapshot and submit the signal.

        Fails with INSUFFICIENT_ANONYMITY_SET before any proving work when the
        fetched group is too small.
        """
        identity = identity_port.derive(challenge)
        try:
            snapshot = await self.fetch_snapshot(session)
        except SignalError as exc:
            return Result.from_error(exc)

        context = SignalContext(
            group_id=session.group_id, raw_message=message, topic=session.topic
        )
        produced = await self._coordinator.produce_signal_async(
            identity, snapshot, context, timeout=self._prover_timeout
        )
        if not produced.ok:
            return Result.failure(produced.error, produced.detail)

        body = VerifyBody(
            proof=produced.value,
            message=message,
            commitment=identity.commitment,
            group_size=snapshot.size,
        )
        try:
            response = await self._send("POST", ROUTE_VERIFY, body=body.to_payload())
        except SignalError as exc:
            return Result.from_error(exc)
        return _result_from_response(response)
