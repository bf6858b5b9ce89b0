import logging
import socket
import struct
import threading
from typing import List, Optional, Tuple

from dnslib import QTYPE, DNSRecord
from dnslib.dns import DNSError

from .errors import TransportError
from .records import AnswerRecord, ErrorHandler, MdnsResponse, ResponseHandler

logger = logging.getLogger("pigeonns.transport")

MDNS_GROUP_V4 = "224.0.0.251"
MDNS_PORT = 5353

# Large enough for any mDNS packet on a standard-MTU link plus jumbo frames.
_RECV_BUFSIZE = 9000
_POLL_INTERVAL = 0.5


def encode_query(name: str, rtype: str) -> bytes:
    """
    Brief: Encode a single-question mDNS query.

    Inputs:
    - name: fully qualified `.local` hostname
    - rtype: record type name ("A" or "AAAA")

    Outputs:
    - bytes: wire-format DNS message with id 0, as mDNS requires

    Example:
        >>> len(encode_query('host.local', 'A')) > 12
        True
    """
    q = DNSRecord.question(name, qtype=rtype)
    q.header.id = 0
    q.header.rd = 0
    return q.pack()


def decode_response(
    data: bytes, source: Optional[Tuple[str, int]] = None
) -> Optional[MdnsResponse]:
    """
    Brief: Decode a datagram into an MdnsResponse.

    Inputs:
    - data: wire-format DNS message
    - source: optional (host, port) of the sender

    Outputs:
    - MdnsResponse for responses (QR=1), None for queries

    Raises:
    - DNSError for malformed packets
    """
    record = DNSRecord.parse(data)
    if not record.header.qr:
        return None
    answers: List[AnswerRecord] = []
    for rr in record.rr:
        answers.append(
            AnswerRecord(
                name=str(rr.rname).rstrip("."),
                type=QTYPE.get(rr.rtype, str(rr.rtype)),
                address=str(rr.rdata),
                ttl=int(rr.ttl),
            )
        )
    return MdnsResponse(answers=answers, source=source)


class MulticastTransport:
    """
    Brief: IPv4 mDNS socket that sends questions and delivers decoded responses.

    Inputs:
    - interface: optional IPv4 address of the interface to join the group on
    - port: UDP port to bind (5353 for mDNS)
    - group: multicast group address

    Outputs:
    - MulticastTransport with start(), query() and close()

    Notes:
    - Received datagrams are handled on a daemon thread; on_response is called
      from that thread.
    - Socket errors are reported through on_error as TransportError and never
      raised from query().
    """

    def __init__(
        self,
        interface: Optional[str] = None,
        port: int = MDNS_PORT,
        group: str = MDNS_GROUP_V4,
    ) -> None:
        self.interface = interface
        self.port = int(port)
        self.group = group
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = threading.Event()
        self._on_response: Optional[ResponseHandler] = None
        self._on_error: Optional[ErrorHandler] = None

    def _open_socket(self) -> socket.socket:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:  # pragma: no cover - platform specific
                    logger.debug("SO_REUSEPORT not supported; continuing without it")
            s.bind(("", self.port))
            iface = socket.inet_aton(self.interface or "0.0.0.0")
            mreq = struct.pack("4s4s", socket.inet_aton(self.group), iface)
            s.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
            if self.interface:
                s.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, iface)
            s.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 255)
            s.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
            # Wake up periodically so close() is noticed without a datagram.
            s.settimeout(_POLL_INTERVAL)
        except OSError:
            s.close()
            raise
        return s

    def start(self, on_response: ResponseHandler, on_error: ErrorHandler) -> None:
        """
        Brief: Bind the multicast socket and start the receiver thread.

        Raises:
        - TransportError when the socket cannot be opened or joined
        """
        if self._sock is not None:
            raise TransportError("transport already started")
        try:
            sock = self._open_socket()
        except OSError as e:
            raise TransportError(
                f"failed to open mDNS socket on port {self.port}: {e}"
            ) from e
        self._on_response = on_response
        self._on_error = on_error
        self._stopping.clear()
        self._sock = sock
        self._thread = threading.Thread(
            target=self._serve, args=(sock,), name="pigeonns-mdns-recv", daemon=True
        )
        self._thread.start()
        logger.info(
            "Listening for mDNS on %s:%d (interface=%s)",
            self.group,
            self.port,
            self.interface or "default",
        )

    def _serve(self, sock: socket.socket) -> None:
        while not self._stopping.is_set():
            try:
                data, addr = sock.recvfrom(_RECV_BUFSIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                self._report(TransportError(f"mDNS receive failed: {e}"))
                break
            self._handle_datagram(data, addr)

    def _handle_datagram(self, data: bytes, addr: Tuple[str, int]) -> None:
        try:
            response = decode_response(data, source=(addr[0], addr[1]))
        except (DNSError, ValueError, IndexError, struct.error) as e:
            logger.debug("Dropping malformed mDNS packet from %s: %s", addr, e)
            return
        if response is None or self._on_response is None:
            return
        try:
            self._on_response(response)
        except Exception:
            logger.exception("mDNS response handler raised")

    def _report(self, exc: Exception) -> None:
        handler = self._on_error
        if handler is None:
            logger.warning("%s", exc)
            return
        try:
            handler(exc)
        except Exception:
            logger.exception("mDNS error handler raised")

    def query(self, name: str, rtype: str) -> None:
        """
        Brief: Multicast one question. Fire and forget.

        Inputs:
        - name: hostname to ask for
        - rtype: "A" or "AAAA"

        Outputs:
        - None; failures go to on_error
        """
        sock = self._sock
        if sock is None:
            self._report(TransportError(f"cannot query {name}: transport is closed"))
            return
        try:
            sock.sendto(encode_query(name, rtype), (self.group, self.port))
        except OSError as e:
            self._report(TransportError(f"mDNS send failed for {name}: {e}"))

    def close(self) -> None:
        """Stop the receiver thread and close the socket. Safe to call twice."""
        sock, self._sock = self._sock, None
        thread, self._thread = self._thread, None
        self._stopping.set()
        if sock is not None:
            try:
                sock.close()
            except OSError:  # pragma: no cover - close rarely fails
                logger.debug("error closing mDNS socket", exc_info=True)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
