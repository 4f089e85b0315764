"""
Capture pipeline: the composition root.

Observers created from a CapturePipeline report into its DeliveryBuffer. The
buffer hands exchanges, strictly in submission order, to deliver(), which
routes each one to its application and fans it out to the consumers:

    DeliveryBuffer -> DomainRouter -> CaptureSink (session log)
                                   -> SessionExtractor (sessions/latest.json)
                                   -> EndpointInferencer (endpoints.json)
                                   -> AuthInferencer (auth.json)

Traffic on unmapped domains is written to the _unassigned log only. Once the
host answers the escalation (register_application or resolve_domain), the
exchanges held for that domain are replayed into the owning application's
consumers before anything newer from that domain is delivered. Registrations
made by another process (the CLI) are noticed the next time traffic arrives
on an unmapped domain after registry.json changed, and replay the same way.

Usage:
    with CapturePipeline() as pipeline:
        client = httpx.Client(transport=pipeline.http_transport())
        client.get('https://mail.example.com/api/inbox')
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import httpx
import pydantic

from sessiontap.capture import CaptureSink, read_session_log
from sessiontap.config import CaptureSettings, settings as default_settings
from sessiontap.delivery import DeliveryBuffer, RetryPolicy
from sessiontap.escalation import FanoutEscalationListener, JournalEscalationListener, LoggingEscalationListener
from sessiontap.exceptions import PersistenceError
from sessiontap.inference import AuthInferencer, EndpointInferencer, SessionExtractor
from sessiontap.observers import (
    CLOCK,
    AsyncObservedStream,
    AsyncObservedTransport,
    CapturedUrls,
    DocumentObserver,
    ObservedStream,
    ObservedTransport,
    ProxyObserverAddon,
    ResourceTimingObserver,
    WallClock,
)
from sessiontap.paths import UNASSIGNED, DataLayout
from sessiontap.protocols import EscalationListener, Scheduler
from sessiontap.registry import ApplicationRegistry, normalize_domain
from sessiontap.routing import DomainRouter
from sessiontap.schemas.catalog import AuthCatalog, EndpointCatalog
from sessiontap.schemas.exchange import Exchange
from sessiontap.schemas.registry import ApplicationDetails, ApplicationProfile
from sessiontap.schemas.session import SessionSnapshot

__all__ = ['CapturePipeline', 'derive_catalogs', 'new_auth_inferencer', 'new_endpoint_inferencer']

logger = logging.getLogger(__name__)


def new_endpoint_inferencer(config: CaptureSettings) -> EndpointInferencer:
    return EndpointInferencer(
        id_min_length=config.ID_SEGMENT_MIN_LENGTH,
        id_min_entropy=config.ID_SEGMENT_MIN_ENTROPY,
        shape_max_depth=config.SHAPE_MAX_DEPTH,
        auth_header_prefix=config.AUTH_HEADER_PREFIX,
        cookie_min_length=config.COOKIE_SIGNAL_MIN_LENGTH,
    )


def new_auth_inferencer(config: CaptureSettings) -> AuthInferencer:
    return AuthInferencer(
        auth_header_prefix=config.AUTH_HEADER_PREFIX,
        id_min_length=config.ID_SEGMENT_MIN_LENGTH,
        id_min_entropy=config.ID_SEGMENT_MIN_ENTROPY,
    )


def derive_catalogs(logs: Iterable[Path], config: CaptureSettings) -> tuple[EndpointInferencer, AuthInferencer]:
    """Replay session logs, oldest first, into fresh inferencers.

    Replaying the same logs always yields byte-identical catalogs.
    """
    endpoints = new_endpoint_inferencer(config)
    auth = new_auth_inferencer(config)
    for log in logs:
        for exchange in read_session_log(log):
            endpoints.observe(exchange)
            auth.observe(exchange)
    return endpoints, auth


class CapturePipeline:
    """Wires observers, delivery, routing, capture and inference together.

    Implements ExchangeSink for its own DeliveryBuffer: is_ready() turns true
    once start() has finished loading the registry, so exchanges submitted
    before that are buffered rather than lost.
    """

    def __init__(
        self,
        config: CaptureSettings | None = None,
        *,
        listener: EscalationListener | None = None,
        scheduler: Scheduler | None = None,
        clock: WallClock = CLOCK,
    ) -> None:
        self.settings = config if config is not None else default_settings
        self.layout = DataLayout(self.settings.DATA_DIR)
        self._clock = clock

        self.registry = ApplicationRegistry(self.layout, clock)
        self.sink = CaptureSink(self.layout, clock)
        self.sessions = SessionExtractor(
            self.layout,
            user_agent=self.settings.USER_AGENT,
            auth_header_prefix=self.settings.AUTH_HEADER_PREFIX,
            cookie_min_length=self.settings.COOKIE_SIGNAL_MIN_LENGTH,
        )
        if listener is None:
            listener = FanoutEscalationListener(
                LoggingEscalationListener(),
                JournalEscalationListener(self.layout.escalations_file),
            )
        self.router = DomainRouter(
            listener,
            scheduler=scheduler,
            debounce_seconds=self.settings.ESCALATION_DEBOUNCE_SECONDS,
            hold_limit=self.settings.UNMAPPED_HOLD_LIMIT,
            clock=clock,
        )
        self.captured_urls = CapturedUrls(
            max_len=self.settings.CAPTURED_URL_MAX,
            max_age_seconds=self.settings.CAPTURED_URL_TTL_SECONDS,
        )
        self.buffer = DeliveryBuffer(
            self,
            RetryPolicy(
                interval=self.settings.DELIVERY_RETRY_INTERVAL,
                grace_window=self.settings.DELIVERY_GRACE_WINDOW,
                backoff=self.settings.DELIVERY_RETRY_BACKOFF,
                max_interval=self.settings.DELIVERY_RETRY_MAX_INTERVAL,
            ),
            backlog_warning_threshold=self.settings.BACKLOG_WARNING_THRESHOLD,
        )

        # Serializes delivery with resolve/register so held exchanges are
        # replayed before newer traffic from the same domain
        self._lock = threading.RLock()
        self._ready = False
        self._closed = False
        self._endpoints: dict[str, EndpointInferencer] = {}
        self._auth: dict[str, AuthInferencer] = {}
        self._unflushed: dict[str, int] = {}
        self._registry_stamp: tuple[int, int] | None = None

    # ==============================================================================
    # Lifecycle
    # ==============================================================================

    def start(self) -> CapturePipeline:
        """Load the registry into the router and begin delivering."""
        self.buffer.start()
        with self._lock:
            self._registry_stamp = self._registry_file_stamp()
            self.router.load_mapping(self.registry.domain_map())
            self._ready = True
        logger.info('Capture pipeline ready (data dir: %s)', self.layout.root)
        return self

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain the buffer, emit pending escalations, flush catalogs and close logs."""
        if self._closed:
            return
        self._closed = True
        self.buffer.close(timeout)
        self.router.flush_escalations()
        self.router.close()
        with self._lock:
            for application in list(self._endpoints):
                self._flush_catalogs(application)
            self.sink.close()
        logger.info('Capture pipeline closed')

    def __enter__(self) -> CapturePipeline:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ==============================================================================
    # ExchangeSink
    # ==============================================================================

    def is_ready(self) -> bool:
        return self._ready

    def deliver(self, exchange: Exchange) -> None:
        """Route one exchange and hand it to every consumer (delivery worker only)."""
        with self._lock:
            if exchange.host and self.router.application_for(exchange.host) is None:
                self._sync_registry()
            decision = self.router.route(exchange)
            self._consume(exchange, decision.application)

    # ==============================================================================
    # Host API
    # ==============================================================================

    def submit_exchange(self, exchange: Exchange) -> None:
        """Emit function shared by every observer. Never blocks, never raises."""
        self.buffer.enqueue(exchange)

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until everything submitted so far was delivered."""
        return self.buffer.wait_idle(timeout)

    def register_application(self, name: str, primary_domain: str) -> ApplicationProfile:
        """Create an application for a domain and replay what was held for it.

        Raises:
            InvalidApplicationNameError: If the name normalizes to nothing
            ApplicationExistsError: If the name is already registered
            DomainConflictError: If another application already owns the domain
        """
        with self._lock:
            profile = self.registry.register(name, primary_domain)
            self._release(profile.primary_domain, profile.name)
        return profile

    def resolve_domain(self, domain: str, application: str) -> ApplicationProfile:
        """Assign a domain to an existing application and replay what was held for it.

        Raises:
            UnknownApplicationError: If the application is not registered
            DomainConflictError: If another application already owns the domain
        """
        with self._lock:
            profile = self.registry.add_domain(application, domain)
            self._release(normalize_domain(domain), profile.name)
        return profile

    def begin_session(self, application: str) -> Path:
        """Start a new session log for an application.

        Raises:
            UnknownApplicationError: If the application is not registered
            PersistenceError: If the log file cannot be created
        """
        started = self._clock.now()
        if application != UNASSIGNED:
            self.registry.touch_session(application, started)
        with self._lock:
            return self.sink.begin_session(application)

    def end_session(self, application: str) -> Path | None:
        """Close the application's session log and flush its catalogs."""
        with self._lock:
            path = self.sink.end_session(application)
            if application in self._endpoints:
                self._flush_catalogs(application)
        return path

    def flush_escalations(self) -> None:
        self.router.flush_escalations()

    # ==============================================================================
    # Queries
    # ==============================================================================

    def get_applications(self) -> list[ApplicationProfile]:
        return self.registry.profiles()

    def get_application_details(self, name: str) -> ApplicationDetails:
        """Raises UnknownApplicationError if not registered."""
        profile = self.registry.get(name)
        return ApplicationDetails(
            profile=profile,
            session_logs=tuple(path.name for path in self.layout.session_logs(name)),
            session=self.session_snapshot(name),
            endpoints=self.endpoint_catalog(name),
            auth=self.auth_catalog(name),
        )

    def session_snapshot(self, application: str) -> SessionSnapshot | None:
        return self.sessions.snapshot(application)

    def endpoint_catalog(self, application: str) -> EndpointCatalog:
        with self._lock:
            return self._endpoint_inferencer(application).catalog()

    def auth_catalog(self, application: str) -> AuthCatalog:
        with self._lock:
            return self._auth_inferencer(application).catalog()

    def rebuild_catalogs(self, application: str) -> tuple[EndpointCatalog, AuthCatalog]:
        """Recompute both catalogs from the application's session logs and save them.

        Raises:
            PersistenceError: If a catalog could not be written
        """
        with self._lock:
            endpoints, auth = derive_catalogs(self.layout.session_logs(application), self.settings)
            self._endpoints[application] = endpoints
            self._auth[application] = auth
            self._unflushed[application] = 0
            endpoints.save(self.layout.endpoints_file(application))
            auth.save(self.layout.auth_file(application))
            return endpoints.catalog(), auth.catalog()

    # ==============================================================================
    # Observers
    # ==============================================================================

    def http_transport(self, inner: httpx.BaseTransport | None = None) -> ObservedTransport:
        return ObservedTransport(
            self.submit_exchange,
            inner,
            captured_urls=self.captured_urls,
            body_limit=self.settings.BODY_CAPTURE_LIMIT,
            clock=self._clock,
        )

    def async_http_transport(self, inner: httpx.AsyncBaseTransport | None = None) -> AsyncObservedTransport:
        return AsyncObservedTransport(
            self.submit_exchange,
            inner,
            captured_urls=self.captured_urls,
            body_limit=self.settings.BODY_CAPTURE_LIMIT,
            clock=self._clock,
        )

    def observe_stream(
        self,
        connection: Any,
        url: str,
        request_headers: Mapping[str, str] | None = None,
    ) -> ObservedStream:
        """Wrap a synchronous message connection (emits stream-open immediately)."""
        return ObservedStream(
            connection,
            self.submit_exchange,
            url,
            request_headers=request_headers,
            message_limit=self.settings.STREAM_MESSAGE_LIMIT,
            captured_urls=self.captured_urls,
            clock=self._clock,
        )

    def observe_async_stream(
        self,
        connection: Any,
        url: str,
        request_headers: Mapping[str, str] | None = None,
    ) -> AsyncObservedStream:
        return AsyncObservedStream(
            connection,
            self.submit_exchange,
            url,
            request_headers=request_headers,
            message_limit=self.settings.STREAM_MESSAGE_LIMIT,
            captured_urls=self.captured_urls,
            clock=self._clock,
        )

    def proxy_addon(self) -> ProxyObserverAddon:
        return ProxyObserverAddon(
            self.submit_exchange,
            captured_urls=self.captured_urls,
            body_limit=self.settings.BODY_CAPTURE_LIMIT,
            message_limit=self.settings.STREAM_MESSAGE_LIMIT,
            clock=self._clock,
        )

    def document_observer(self) -> DocumentObserver:
        return DocumentObserver(self.submit_exchange, clock=self._clock)

    def resource_timing_observer(self) -> ResourceTimingObserver:
        return ResourceTimingObserver(self.submit_exchange, self.captured_urls, clock=self._clock)

    # ==============================================================================
    # Internals (caller holds the lock)
    # ==============================================================================

    def _registry_file_stamp(self) -> tuple[int, int] | None:
        try:
            stat = self.layout.registry_file.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_ino

    def _sync_registry(self) -> None:
        """Pick up domains registered by another process (for example the CLI)."""
        stamp = self._registry_file_stamp()
        if stamp == self._registry_stamp:
            return
        try:
            domain_map = self.registry.domain_map()
        except pydantic.ValidationError as e:
            logger.warning('Ignoring unreadable registry %s: %s', self.layout.registry_file, e)
            return
        self._registry_stamp = stamp
        for domain, application in domain_map.items():
            if self.router.application_for(domain) is None:
                logger.info('Registry now maps %s to %s', domain, application)
                self._release(domain, application)

    def _release(self, domain: str, application: str) -> None:
        held = self.router.resolve(domain, application)
        for exchange in held:
            self._consume(exchange, application)
        if held:
            logger.info('Replayed %d held exchanges from %s into %s', len(held), domain, application)

    def _consume(self, exchange: Exchange, application: str) -> None:
        try:
            self.sink.accept(exchange, application)
        except PersistenceError as e:
            logger.error('Exchange not captured: %s', e)

        if application == UNASSIGNED:
            return

        try:
            self.sessions.observe(exchange, application)
        except PersistenceError as e:
            logger.error('Session snapshot not saved: %s', e)

        self._endpoint_inferencer(application).observe(exchange)
        self._auth_inferencer(application).observe(exchange)

        count = self._unflushed.get(application, 0) + 1
        if count >= self.settings.CATALOG_FLUSH_EVERY:
            self._flush_catalogs(application)
        else:
            self._unflushed[application] = count

    def _endpoint_inferencer(self, application: str) -> EndpointInferencer:
        inferencer = self._endpoints.get(application)
        if inferencer is None:
            inferencer = new_endpoint_inferencer(self.settings)
            inferencer.load(self.layout.endpoints_file(application))
            self._endpoints[application] = inferencer
        return inferencer

    def _auth_inferencer(self, application: str) -> AuthInferencer:
        inferencer = self._auth.get(application)
        if inferencer is None:
            inferencer = new_auth_inferencer(self.settings)
            inferencer.load(self.layout.auth_file(application))
            self._auth[application] = inferencer
        return inferencer

    def _flush_catalogs(self, application: str) -> None:
        self._unflushed[application] = 0
        try:
            self._endpoint_inferencer(application).save(self.layout.endpoints_file(application))
            self._auth_inferencer(application).save(self.layout.auth_file(application))
        except PersistenceError as e:
            logger.error('Catalogs for %s not saved: %s', application, e)
