"""JSON body schemas for the members/register/verify surface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ...protocol.exceptions import ProofVerificationError
from ...protocol.types import Commitment, Proof, RegistrationRequest
from .constants import MAX_MEMBERS_PER_RESPONSE, MAX_MESSAGE_BYTES, MAX_TOPIC_LENGTH
from .errors import SchemaError, SizeLimitError


def _require_mapping(payload: Any, label: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise SchemaError(f"{label} must be an object")
    return payload


def _require_str(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise SchemaError(f"{field} must be a non-empty string")
    return value


def _parse_group_id(value: Any) -> int:
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SchemaError("groupId must be a non-negative integer")
    return value


def _parse_commitment(value: Any, field: str = "commitment") -> Commitment:
    try:
        return Commitment.parse(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{field}: {exc}") from exc


@dataclass(frozen=True)
class MembersQuery:
    group_id: int

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "MembersQuery":
        params = _require_mapping(params, "query")
        if "groupId" not in params:
            raise SchemaError("groupId is required")
        return cls(group_id=_parse_group_id(params["groupId"]))


@dataclass(frozen=True)
class RegisterBody:
    username: str
    group_id: int
    commitment: Commitment
    admission_ref: str

    @classmethod
    def from_payload(cls, payload: Any) -> "RegisterBody":
        payload = _require_mapping(payload, "body")
        return cls(
            username=_require_str(payload, "username"),
            group_id=_parse_group_id(payload.get("groupId")),
            commitment=_parse_commitment(payload.get("commitment")),
            admission_ref=_require_str(payload, "admissionRef"),
        )

    def to_request(self) -> RegistrationRequest:
        return RegistrationRequest(
            username=self.username,
            group_id=self.group_id,
            commitment=self.commitment,
            admission_ref=self.admission_ref,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "groupId": self.group_id,
            "commitment": str(self.commitment),
            "admissionRef": self.admission_ref,
        }


@dataclass(frozen=True)
class VerifyBody:
    proof: Proof
    message: str
    commitment: Optional[Commitment] = None
    group_size: Optional[int] = None
    group_id: Optional[int] = None

    @property
    def message_bytes(self) -> bytes:
        return self.message.encode("utf-8")

    @classmethod
    def from_payload(cls, payload: Any) -> "VerifyBody":
        payload = _require_mapping(payload, "body")
        message = payload.get("message")
        if not isinstance(message, str):
            raise SchemaError("message must be a string")
        if len(message.encode("utf-8")) > MAX_MESSAGE_BYTES:
            raise SizeLimitError("message too large")

        raw_proof = _require_mapping(payload.get("proof"), "proof")
        try:
            proof = Proof.from_json_dict(dict(raw_proof))
        except ProofVerificationError as exc:
            raise SchemaError(str(exc)) from exc
        if len(proof.public_inputs.topic) > MAX_TOPIC_LENGTH:
            raise SizeLimitError("topic too long")

        commitment = None
        if payload.get("commitment") is not None:
            commitment = _parse_commitment(payload["commitment"])

        group_size = payload.get("groupSize")
        if group_size is not None and (
            isinstance(group_size, bool) or not isinstance(group_size, int) or group_size < 0
        ):
            raise SchemaError("groupSize must be a non-negative integer")

        group_id = None
        if payload.get("groupId") is not None:
            group_id = _parse_group_id(payload["groupId"])

        return cls(
            proof=proof,
            message=message,
            commitment=commitment,
            group_size=group_size,
            group_id=group_id,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "proof": self.proof.to_json_dict(),
            "message": self.message,
        }
        if self.commitment is not None:
            payload["commitment"] = str(self.commitment)
        if self.group_size is not None:
            payload["groupSize"] = self.group_size
        if self.group_id is not None:
            payload["groupId"] = self.group_id
        return payload


def parse_member_list(payload: Any) -> List[Commitment]:
    """
    Validate a fetched ``/members`` body into ordered commitments.

    Raises:
        SchemaError: On a malformed entry or duplicate commitment
        SizeLimitError: If the list is implausibly long
    """
    payload = _require_mapping(payload, "members response")
    entries = payload.get("members")
    if not isinstance(entries, list):
        raise SchemaError("members must be a list")
    if len(entries) > MAX_MEMBERS_PER_RESPONSE:
        raise SizeLimitError("member list too long")

    members: List[Commitment] = []
    seen = set()
    for idx, entry in enumerate(entries):
        entry = _require_mapping(entry, f"members[{idx}]")
        commitment = _parse_commitment(entry.get("commitment"), f"members[{idx}].commitment")
        if commitment in seen:
            raise SchemaError(f"members[{idx}] duplicates an earlier commitment")
        seen.add(commitment)
        members.append(commitment)
    return members
