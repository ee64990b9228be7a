"""Request-surface constants."""

from __future__ import annotations

API_VERSION = 1

ROUTE_MEMBERS = "/members"
ROUTE_REGISTER = "/register"
ROUTE_VERIFY = "/verify"

MAX_MESSAGE_BYTES = 4096
MAX_TOPIC_LENGTH = 128
MAX_MEMBERS_PER_RESPONSE = 1 << 20
