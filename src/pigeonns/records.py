"""Answer records and the transport contract shared by the resolver and transports.

The resolver never sees wire bytes. A transport decodes mDNS datagrams into
MdnsResponse objects and hands them to the callback registered in start().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol, Tuple

# Record types the resolver stores. Anything else in a response is ignored.
ADDRESS_TYPES: Tuple[str, ...] = ("A", "AAAA")


@dataclass(frozen=True)
class AnswerRecord:
    """Brief: One decoded resource record from an mDNS response.

    Inputs:
      - name: Owner name as it appeared on the wire (trailing dot removed).
      - type: Record type name, e.g. "A", "AAAA", "PTR".
      - address: Textual rdata; an IPv4/IPv6 literal for address records.
      - ttl: Record TTL in seconds (0 for goodbye records).

    Outputs:
      - AnswerRecord instance.
    """

    name: str
    type: str
    address: str
    ttl: int = 0

    @property
    def is_address(self) -> bool:
        return self.type in ADDRESS_TYPES


@dataclass
class MdnsResponse:
    """Brief: A decoded mDNS response.

    Inputs:
      - answers: Records from the answer section.
      - source: Optional (host, port) of the responder.

    Outputs:
      - MdnsResponse instance.
    """

    answers: List[AnswerRecord] = field(default_factory=list)
    source: Optional[Tuple[str, int]] = None


ResponseHandler = Callable[[MdnsResponse], None]
ErrorHandler = Callable[[Exception], None]


class Transport(Protocol):
    """Shape of the multicast collaborator the resolver depends on."""

    def start(self, on_response: ResponseHandler, on_error: ErrorHandler) -> None:
        ...

    def query(self, name: str, rtype: str) -> None:
        ...

    def close(self) -> None:
        ...
