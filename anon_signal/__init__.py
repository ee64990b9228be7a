"""
anon_signal - anonymous group signalling with replay protection.

Members register a commitment into a group accumulator; any member can then
publish a signal proven to come from some member, at most once per group
(or per topic), once the group is large enough to hide in.
"""

__version__ = "0.1.0"
