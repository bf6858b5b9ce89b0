"""Local-only mDNS resolution engine.

MdnsResolver resolves `.local` hostnames to IPv4/IPv6 literals by sending
multicast questions through a transport and caching whatever answers come
back. This is useful for WebRTC, where browsers hide local addresses behind
random mDNS names.

All cache and pending-table mutations happen under one engine lock. Transport
sends and event callbacks always run outside it.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import LRUCache, cached

from .cache import AddressCache, cache_key
from .config import ResolverConfig
from .errors import (
    AlreadyRunningError,
    NotRunningError,
    ResolveTimeoutError,
    StoppedError,
    UnsupportedRecordTypeError,
)
from .pending import PendingQuery, PendingQueryTable
from .records import ADDRESS_TYPES, MdnsResponse, Transport

logger = logging.getLogger("pigeonns.resolver")

EVENTS = (
    "started",
    "stopped",
    "query",
    "cache-hit",
    "resolved",
    "cache-cleared",
    "error",
)

TransportFactory = Callable[[ResolverConfig], Transport]


@cached(cache=LRUCache(maxsize=4096), lock=threading.Lock())
def normalize_name(name: str, domain: str = ".local") -> str:
    """Brief: Canonical form of a hostname typed by a caller.

    Inputs:
      - name: Hostname with or without the mDNS suffix, any case.
      - domain: Suffix with a leading dot (e.g. `.local`).

    Outputs:
      - str: Case-folded name ending in domain. Idempotent.

    Example:
      >>> normalize_name("Printer")
      'printer.local'
      >>> normalize_name("printer.LOCAL.")
      'printer.local'
    """

    s = str(name).strip().rstrip(".").casefold()
    if not s:
        raise ValueError("hostname must not be empty")
    if s == domain.lstrip(".") or not s.endswith(domain):
        s = s + domain
    return s


def normalize_wire_name(name: str) -> str:
    """Case-fold an owner name from a response; the suffix is never appended."""
    return str(name).rstrip(".").casefold()


def normalize_type(rtype: Any) -> str:
    """Brief: Upper-case a record type and reject anything but A/AAAA.

    Example:
      >>> normalize_type("aaaa")
      'AAAA'
    """

    s = str(rtype or "A").strip().upper()
    if s not in ADDRESS_TYPES:
        raise UnsupportedRecordTypeError(rtype)
    return s


def _default_transport_factory(config: ResolverConfig) -> Transport:
    from .transport import MulticastTransport

    return MulticastTransport(interface=config.interface, port=config.port)


class MdnsResolver:
    """
    Brief: Resolve mDNS hostnames with caching and per-key query deduplication.

    Inputs:
      - config: Optional ResolverConfig. Keyword overrides (timeout_ms, ttl,
        cache_size, domain, interface, port) build one when omitted.
      - transport_factory: Callable(config) -> Transport, called on every
        start(). Defaults to the UDP multicast transport.
      - clock: Callable returning epoch seconds, shared with the cache.

    Outputs:
      - MdnsResolver instance (initially stopped).

    Example:
      >>> resolver = MdnsResolver(timeout_ms=2000)
      >>> resolver.start()
      >>> resolver.resolve("abc123.local")  # doctest: +SKIP
      '192.168.1.20'
      >>> resolver.stop()
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        clock: Optional[Callable[[], float]] = None,
        **overrides: Any,
    ) -> None:
        if config is None:
            config = ResolverConfig(**overrides)
        elif overrides:
            raise TypeError("pass either a ResolverConfig or keyword overrides, not both")
        self.config = config
        self._clock = clock or time.time
        self._transport_factory = transport_factory or _default_transport_factory
        self._transport: Optional[Transport] = None
        self._cache = AddressCache(capacity=config.cache_size, clock=self._clock)
        self._pending = PendingQueryTable()
        self._lock = threading.RLock()
        self._listeners: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)

    # ------------------------------------------------------------------ events

    def on(self, event: str, handler: Callable[[Any], None]) -> Callable[[Any], None]:
        """Brief: Subscribe handler to event; returns handler so it can be used as a decorator.

        Inputs:
          - event: One of EVENTS.
          - handler: Callable receiving a single payload argument.

        Outputs:
          - handler
        """

        if event not in EVENTS:
            raise ValueError(f"unknown event {event!r}; expected one of {EVENTS}")
        with self._lock:
            self._listeners[event].append(handler)
        return handler

    def off(self, event: str, handler: Callable[[Any], None]) -> None:
        with self._lock:
            handlers = self._listeners.get(event) or []
            if handler in handlers:
                handlers.remove(handler)

    def _emit(self, event: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._listeners.get(event) or [])
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("listener for %r raised", event)

    # --------------------------------------------------------------- lifecycle

    @property
    def running(self) -> bool:
        return self._transport is not None

    def start(self) -> None:
        """Brief: Create and start the transport; the resolver accepts queries afterwards.

        Raises:
          - AlreadyRunningError when called twice without stop().
        """

        with self._lock:
            if self._transport is not None:
                raise AlreadyRunningError()
        # Socket setup happens outside the engine lock.
        transport = self._transport_factory(self.config)
        transport.start(self.ingest, self._on_transport_error)
        with self._lock:
            lost_race = self._transport is not None
            if not lost_race:
                self._transport = transport
        if lost_race:
            transport.close()
            raise AlreadyRunningError()
        logger.info(
            "mDNS resolver started (timeout=%dms ttl=%ds cache_size=%d)",
            self.config.timeout_ms,
            self.config.ttl,
            self.config.cache_size,
        )
        self._emit("started")

    def stop(self) -> None:
        """Brief: Reject every in-flight query with StoppedError and release the transport.

        Inputs:
          - None

        Outputs:
          - None. Returns only after every pending future has been settled.
            The cache is left untouched. Stopping a stopped resolver is a no-op
            apart from the `stopped` event.
        """

        with self._lock:
            transport, self._transport = self._transport, None
            drained = self._pending.drain()
        for pending in drained:
            pending.reject(StoppedError())
        if drained:
            logger.info("Rejected %d pending queries on stop", len(drained))
        if transport is not None:
            try:
                transport.close()
            except Exception:
                logger.exception("error while closing mDNS transport")
        self._emit("stopped")

    # -------------------------------------------------------------- resolution

    def normalize(self, name: str) -> str:
        return normalize_name(name, self.config.domain)

    def resolve_future(self, name: str, rtype: str = "A") -> Future:
        """
        Brief: Start (or join) resolution of name and return a future for the address.

        Inputs:
          - name: Hostname, with or without the `.local` suffix.
          - rtype: "A" (IPv4, default) or "AAAA" (IPv6).

        Outputs:
          - concurrent.futures.Future[str]. A fresh cache hit returns a future
            that is already done. Callers asking for the same key while a
            query is in flight get the same future object, which settles with
            the address, ResolveTimeoutError or StoppedError.

        Raises:
          - NotRunningError if start() has not been called.
          - ValueError / UnsupportedRecordTypeError for bad input.
        """

        rtype = normalize_type(rtype)
        name = self.normalize(name)
        key = cache_key(name, rtype)

        with self._lock:
            transport = self._transport
            if transport is None:
                raise NotRunningError()

            entry = self._cache.get(name, rtype)
            if entry is not None and entry.is_fresh(self._clock()):
                hit: Future = Future()
                hit.set_result(entry.address)
                cached_address: Optional[str] = entry.address
            else:
                cached_address = None

            if cached_address is None:
                existing = self._pending.get(key)
                if existing is not None:
                    logger.debug("Joining pending query for %s", key)
                    return existing.join()

                pending = PendingQuery(key, name, rtype)
                self._pending.add(pending)
                pending.arm(self.config.timeout_ms, self._expire)

        if cached_address is not None:
            logger.debug("Cache hit for %s -> %s", key, cached_address)
            self._emit("cache-hit", {"name": name, "type": rtype, "address": cached_address})
            return hit

        logger.debug("Querying %s", key)
        transport.query(name, rtype)
        self._emit("query", {"name": name, "type": rtype})
        return pending.future

    def resolve(self, name: str, rtype: str = "A", timeout: Optional[float] = None) -> str:
        """Blocking form of resolve_future(); raises whatever the query settled with.

        Example:
          >>> resolver.resolve("abc123", "AAAA")  # doctest: +SKIP
          'fe80::1'
        """

        return self.resolve_future(name, rtype).result(timeout=timeout)

    def _expire(self, pending: PendingQuery) -> None:
        with self._lock:
            removed = self._pending.pop(pending.key, pending)
        if removed is None:
            return
        if pending.reject(ResolveTimeoutError(pending.name)):
            logger.info("Timed out resolving %s (%s)", pending.name, pending.rtype)

    # --------------------------------------------------------------- ingestion

    def ingest(self, response: MdnsResponse) -> None:
        """
        Brief: Cache every A/AAAA answer in response and settle matching queries.

        Inputs:
          - response: MdnsResponse delivered by the transport.

        Outputs:
          - None. Each address record is handled on its own: it is cached
            (possibly evicting the oldest entry), settles the pending query for
            its key if there is one, and produces a `resolved` event. Other
            record types are ignored. A record arriving after its query timed
            out only updates the cache.
        """

        answers = getattr(response, "answers", None)
        if not answers:
            return

        settled: List[Tuple[PendingQuery, str]] = []
        resolved: List[Dict[str, Any]] = []
        with self._lock:
            for answer in answers:
                if not answer.is_address:
                    continue
                name = normalize_wire_name(answer.name)
                ttl = answer.ttl if answer.ttl and answer.ttl > 0 else self.config.ttl
                self._cache.put(name, answer.type, answer.address, ttl)
                pending = self._pending.pop(cache_key(name, answer.type))
                if pending is not None:
                    settled.append((pending, answer.address))
                resolved.append(
                    {"name": name, "type": answer.type, "address": answer.address, "ttl": ttl}
                )

        for pending, address in settled:
            pending.resolve(address)
        for payload in resolved:
            logger.debug(
                "Resolved %s %s -> %s (ttl=%ss)",
                payload["type"],
                payload["name"],
                payload["address"],
                payload["ttl"],
            )
            self._emit("resolved", payload)

    def _on_transport_error(self, exc: Exception) -> None:
        logger.warning("mDNS transport error: %s", exc)
        self._emit("error", exc)

    # ------------------------------------------------------------------- cache

    def clear_cache(self) -> None:
        self._cache.clear()
        self._emit("cache-cleared")

    def cache_size(self) -> int:
        return self._cache.size()

    def cache_snapshot(self) -> Dict[str, Dict[str, object]]:
        return self._cache.snapshot()

    def pending_keys(self) -> List[str]:
        with self._lock:
            return self._pending.keys()
