"""Members/register/verify request surface."""

from .client import LocalTransport, SignalClient, SignalSession, Transport, retry_with_backoff
from .constants import ROUTE_MEMBERS, ROUTE_REGISTER, ROUTE_VERIFY
from .errors import ProtocolError, SchemaError, SizeLimitError
from .handler import STATUS_BY_KIND, Response, SignalAPI, error_response
from .messages import MembersQuery, RegisterBody, VerifyBody, parse_member_list

__all__ = [
    "LocalTransport",
    "MembersQuery",
    "ProtocolError",
    "ROUTE_MEMBERS",
    "ROUTE_REGISTER",
    "ROUTE_VERIFY",
    "RegisterBody",
    "Response",
    "STATUS_BY_KIND",
    "SchemaError",
    "SignalAPI",
    "SignalClient",
    "SignalSession",
    "SizeLimitError",
    "Transport",
    "VerifyBody",
    "error_response",
    "parse_member_list",
    "retry_with_backoff",
]
