"""Behaviour shared by the synchronous and asynchronous HTTP providers.

:class:`BaseHttp` owns everything about a request that does not depend on
how the transport is driven:

- **Options** -- validation of request options and merging with the
  provider defaults (``headers``, ``query`` and ``extra`` merge key by key).
- **URIs and identifiers** -- resolving relative URIs against the base URI
  and deriving the request identifier used as cache key.
- **Cache lookup** -- serving a hit straight from the
  :class:`~fetchcache.cache.store.CacheStore` or attaching a write slot to
  the live envelope on a miss.
- **Completion** -- classifying a resolved response, dispatching events,
  raising or suppressing errors and queueing successful responses as
  deferred cache writes.
- **Decoding** -- choosing a decoder for a response.

Subclasses provide ``prepare`` and ``run`` and the convenience verbs on top
of an :mod:`httpx` client.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Union

import httpx

from fetchcache import USER_AGENT
from fetchcache.cache.backends import CacheBackend
from fetchcache.cache.store import (
    CacheItem,
    CacheStore,
    entry_from_response,
    load_entry,
    response_from_entry,
)
from fetchcache.decode import Decoder, DecoderFactory
from fetchcache.events import EventDispatcher, RequestEvent, Subscriber
from fetchcache.exceptions import (
    BaseUriError,
    CacheError,
    DecoderError,
    HttpError,
    HttpOptionError,
    InvalidHttpMethodError,
    TransportError,
)
from fetchcache.http.envelope import ResponseEnvelope
from fetchcache.http.session import RequestSession
from fetchcache.http.trace import RequestTrace
from fetchcache.identifier import effective_uri, identify
from fetchcache.models import ClientConfig, HTTPMethod, RequestConfig

logger = logging.getLogger(__name__)

REQUEST_OPTIONS = frozenset(
    {"headers", "query", "json", "body", "data", "timeout", "follow_redirects", "extra"}
)
"""Recognised request option names."""

MERGED_OPTIONS = ("headers", "query", "extra")
"""Options merged key by key with the provider defaults."""

RETRYABLE_STATUS_CODES = frozenset({423, 425, 429, 500, 502, 503, 504, 507, 510})
"""Statuses retried when retry is enabled."""

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)
"""Connectivity failures retried when retry is enabled."""


class BaseHttp:
    """Common state and request handling of the HTTP providers.

    Args:
        base_uri: Base URI relative request URIs are resolved against.
            Overrides ``config.base_uri``.
        config: Client configuration; defaults are used when omitted.
        cache: Cache store, or a backend to build one from.  Setting a
            cache enables caching.
        dispatcher: Event dispatcher; a new one is created when omitted.
        session: Request counter shared with sub-requests.
        decoder: Default decoder for :meth:`decode`.
    """

    def __init__(
        self,
        base_uri: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        *,
        cache: Union[CacheStore, CacheBackend, None] = None,
        dispatcher: Optional[EventDispatcher] = None,
        session: Optional[RequestSession] = None,
        decoder: Optional[Decoder] = None,
    ) -> None:
        self._config = config.model_copy(deep=True) if config is not None else ClientConfig()
        self._base_uri = base_uri if base_uri is not None else self._config.base_uri
        self._retry_enabled = self._config.request.retry_enabled
        self._suppress_errors = False
        self._cacheable_methods = set(self._config.cacheable_methods)

        headers = {"User-Agent": self._config.user_agent or USER_AGENT}
        headers.update(self._config.default_headers)
        self._default_options: dict[str, Any] = {"headers": headers}

        self._cache: Optional[CacheStore] = None
        self._cache_enabled = False
        if cache is not None:
            self.set_cache(cache)

        self._dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self._session = session if session is not None else RequestSession()
        self._trace = RequestTrace()
        self._default_decoder = decoder
        self._owns_client = True

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def request_config(self) -> RequestConfig:
        return self._config.request

    @property
    def base_uri(self) -> Optional[str]:
        return self._base_uri

    def set_base_uri(self, base_uri: str) -> None:
        self._base_uri = base_uri

    def get_uri(self, uri: str = "") -> str:
        """Return the absolute URI for *uri*.

        Absolute URIs are returned unchanged; anything else is appended to
        the base URI.

        Raises:
            BaseUriError: If *uri* is relative and no base URI is set.
        """
        if uri and httpx.URL(uri).is_absolute_url:
            return uri
        if not self._base_uri:
            raise BaseUriError(f"Base URI not set, cannot request relative URI '{uri}'")
        if not uri:
            return self._base_uri
        return self._base_uri.rstrip("/") + "/" + uri.lstrip("/")

    @property
    def retry_enabled(self) -> bool:
        return self._retry_enabled

    def set_retry(self, enabled: bool = True) -> None:
        self._retry_enabled = enabled

    @property
    def suppress_errors(self) -> bool:
        return self._suppress_errors

    def set_suppress_errors(self, suppress: bool = True) -> None:
        """Return failed responses instead of raising for 3xx/4xx/5xx status."""
        self._suppress_errors = suppress

    # ------------------------------------------------------------------ #
    # Default options
    # ------------------------------------------------------------------ #

    def get_default_options(self) -> dict[str, Any]:
        return copy.deepcopy(self._default_options)

    def set_default_options(self, options: dict[str, Any]) -> None:
        """Merge *options* into the defaults sent with every request."""
        self._default_options = self.merge_options(options)

    def remove_default_option(self, name: str, child: Optional[str] = None) -> None:
        """Remove a default option, or one key of a merged option.

        Example::

            http.remove_default_option("headers", "User-Agent")
        """
        if child is None:
            self._default_options.pop(name, None)
            return
        value = self._default_options.get(name)
        if isinstance(value, dict):
            value.pop(child, None)

    def merge_options(self, options: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Return the default options overlaid with *options*.

        Raises:
            HttpOptionError: If an option name is not recognised.
        """
        options = options or {}
        unknown = set(options) - REQUEST_OPTIONS
        if unknown:
            raise HttpOptionError(
                f"Unknown request option/s: {', '.join(sorted(unknown))}. "
                f"Valid options are: {', '.join(sorted(REQUEST_OPTIONS))}"
            )
        merged = copy.deepcopy(self._default_options)
        for name, value in options.items():
            if name in MERGED_OPTIONS and isinstance(value, dict):
                merged[name] = {**merged.get(name, {}), **value}
            else:
                merged[name] = value
        return merged

    # ------------------------------------------------------------------ #
    # Cache control
    # ------------------------------------------------------------------ #

    @property
    def cache(self) -> Optional[CacheStore]:
        return self._cache

    def set_cache(self, cache: Union[CacheStore, CacheBackend], lifetime: Optional[int] = None) -> None:
        """Use *cache* for responses and enable caching.

        Args:
            cache: A store, or a backend wrapped in a new store.
            lifetime: Default lifetime in seconds; when omitted a new store
                uses ``config.cache.default_lifetime_seconds``.
        """
        if isinstance(cache, CacheBackend):
            default = lifetime if lifetime is not None else self._config.cache.default_lifetime_seconds
            cache = CacheStore(cache, default_lifetime=default)
        elif lifetime is not None:
            cache.set_lifetime(lifetime)
        self._cache = cache
        self._cache_enabled = True

    @property
    def is_cache_enabled(self) -> bool:
        return self._cache_enabled and self._cache is not None

    def enable_cache(self, lifetime: Optional[int] = None) -> None:
        """Re-enable caching, optionally changing the default lifetime.

        Raises:
            CacheError: If no cache was set with :meth:`set_cache`.
        """
        if self._cache is None:
            raise CacheError("You must set up the cache with set_cache() before enabling it")
        if lifetime is not None:
            self._cache.set_lifetime(lifetime)
        self._cache_enabled = True

    def disable_cache(self) -> None:
        self._cache_enabled = False

    def set_cache_tags(self, tags: Iterable[str]) -> None:
        """Tag every response cached from now on.

        Raises:
            CacheError: If no cache is set.
            CacheCapabilityError: If the backend is not tag-aware.
        """
        if self._cache is None:
            raise CacheError("You must set up the cache with set_cache() before setting tags")
        self._cache.set_tags(tags)

    def commit_cache(self) -> bool:
        """Flush deferred cache writes."""
        if self._cache is None:
            return True
        return self._cache.commit()

    @property
    def cacheable_methods(self) -> set[str]:
        return set(self._cacheable_methods)

    def set_cacheable_methods(self, methods: Iterable[str]) -> None:
        """Set which HTTP methods may be served from and written to the cache.

        Raises:
            InvalidHttpMethodError: If a method name is not recognised.
        """
        self._cacheable_methods = {self._validate_method(m) for m in methods}

    def is_cacheable(self, method: str) -> bool:
        return self.is_cache_enabled and method.upper() in self._cacheable_methods

    # ------------------------------------------------------------------ #
    # Events, session and trace
    # ------------------------------------------------------------------ #

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def add_subscriber(self, subscriber: Subscriber) -> None:
        self._dispatcher.add_subscriber(subscriber)

    @property
    def session(self) -> RequestSession:
        return self._session

    def start_session(self) -> None:
        """Reset the request counter at the start of a logical operation."""
        self._session.reset()

    @property
    def total_requests(self) -> int:
        return self._session.total

    @property
    def trace(self) -> RequestTrace:
        return self._trace

    def create_sub_request(self):
        """Return a provider for nested requests.

        The sub-request shares the transport, cache, dispatcher and session
        of this provider, has its own default options and trace, and
        suppresses HTTP-level errors.
        """
        sub = copy.copy(self)
        sub._default_options = copy.deepcopy(self._default_options)
        sub._cacheable_methods = set(self._cacheable_methods)
        sub._trace = RequestTrace()
        sub._suppress_errors = True
        sub._owns_client = False
        return sub

    # ------------------------------------------------------------------ #
    # Decoding
    # ------------------------------------------------------------------ #

    @property
    def default_decoder(self) -> Optional[Decoder]:
        return self._default_decoder

    def set_default_decoder(self, decoder: Optional[Decoder]) -> None:
        self._default_decoder = decoder

    def decode(self, envelope: ResponseEnvelope, decoder: Optional[Decoder] = None) -> Any:
        """Decode the body of a resolved *envelope*.

        The decoder is, in order: *decoder*, the default decoder, one
        matching the ``Content-Type`` header, one matching the URI
        extension.

        Raises:
            DecoderError: If no decoder can be resolved or decoding fails.
        """
        decoder = decoder or self._default_decoder
        if decoder is None:
            decoder = DecoderFactory.from_content_type(envelope.content_type)
        if decoder is None:
            decoder = DecoderFactory.from_filename(envelope.url)
        if decoder is None:
            raise DecoderError(
                f"Cannot determine decoder for {envelope.url} "
                f"(content type: {envelope.content_type or 'none'})"
            )
        data = decoder.decode(envelope)
        self._dispatch(
            "on_decode", envelope.request_id, envelope.url,
            context={"decoder": type(decoder).__name__}, data=data,
        )
        return data

    # ------------------------------------------------------------------ #
    # Request handling
    # ------------------------------------------------------------------ #

    def identify(self, method: str, uri: str, options: Optional[dict[str, Any]] = None) -> str:
        return identify(method, uri, options)

    def check_response(self, envelope: ResponseEnvelope) -> Optional[HttpError]:
        """Return an error for a 2xx response that should still count as failed.

        The default accepts every 2xx response.
        """
        return None

    def _validate_method(self, method: str) -> str:
        method = str(getattr(method, "value", method)).upper()
        if method not in HTTPMethod.__members__:
            raise InvalidHttpMethodError(
                f"Invalid HTTP method '{method}', valid methods are: "
                + ", ".join(HTTPMethod.__members__)
            )
        return method

    def _lookup(
        self,
        method: str,
        uri: str,
        options: Optional[dict[str, Any]],
        cacheable: Optional[bool] = None,
    ) -> tuple[str, str, dict[str, Any], str, Optional[ResponseEnvelope], Optional[CacheItem]]:
        """Resolve a request and consult the cache.

        Returns:
            ``(method, url, options, request_id, hit, cache_item)`` where
            *hit* is an envelope served from the cache and *cache_item* the
            write slot for a cacheable miss.
        """
        method = self._validate_method(method)
        options = self.merge_options(options)
        url = self.get_uri(uri)
        request_id = self.identify(method, url, options)

        if cacheable is None:
            cacheable = self.is_cacheable(method)
        if not (cacheable and self.is_cache_enabled):
            return method, url, options, request_id, None, None

        item = self._cache.get_item(request_id)
        if item.hit:
            entry = load_entry(item.value)
            if entry is not None:
                logger.debug("Cache hit %s %s (%s)", method, url, request_id[:12])
                request = httpx.Request(method, effective_uri(url, options.get("query")))
                envelope = ResponseEnvelope(
                    request_id, method, url, options,
                    response=response_from_entry(entry, request),
                    hit=True,
                    suppress_errors=self._suppress_errors,
                )
                return method, url, options, request_id, envelope, None
        logger.debug("Cache miss %s %s (%s)", method, url, request_id[:12])
        return method, url, options, request_id, None, CacheItem(key=request_id)

    def _new_envelope(
        self,
        method: str,
        url: str,
        options: dict[str, Any],
        request_id: str,
        sender: Any,
        cache_item: Optional[CacheItem],
    ) -> ResponseEnvelope:
        self._trace.add(request_id, url, method, options)
        envelope = ResponseEnvelope(
            request_id, method, url, options,
            sender=sender,
            suppress_errors=self._suppress_errors,
        )
        if cache_item is not None:
            envelope.set_cache_item(cache_item)
        return envelope

    def _request_kwargs(self, options: dict[str, Any]) -> dict[str, Any]:
        """Translate request options into :meth:`httpx.Client.request` arguments."""
        kwargs: dict[str, Any] = {}
        if options.get("headers"):
            kwargs["headers"] = options["headers"]
        if options.get("query"):
            kwargs["params"] = options["query"]
        if options.get("json") is not None:
            kwargs["json"] = options["json"]
        elif options.get("data") is not None:
            kwargs["data"] = options["data"]
        elif options.get("body") is not None:
            kwargs["content"] = options["body"]
        if options.get("timeout") is not None:
            kwargs["timeout"] = options["timeout"]
        if options.get("follow_redirects") is not None:
            kwargs["follow_redirects"] = options["follow_redirects"]
        if options.get("extra"):
            kwargs["extensions"] = options["extra"]
        return kwargs

    def _attempts(self, retry: bool) -> int:
        return self._config.request.max_attempts if retry else 1

    def _retry_delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based): delay, 2x delay, 4x delay, ..."""
        return self._config.request.retry_delay * 2 ** (attempt - 1)

    def _transport_error(self, exc: Exception, request_id: str, attempts: int) -> TransportError:
        """Build the error for a failed live call from its trace entry."""
        message = f"Failed HTTP transport request: {exc}"
        if attempts > 1:
            message += f" (after {attempts} attempts)"
        return TransportError(
            message,
            uri=self._trace.get_uri(request_id),
            method=self._trace.get_method(request_id),
            options=self._trace.get_options(request_id),
        )

    def _run_hit(self, envelope: ResponseEnvelope) -> ResponseEnvelope:
        self._dispatch(
            "on_success", envelope.request_id, envelope.url,
            context={"code": envelope.status_code, "hit": True},
        )
        return envelope

    def _fail_transport(self, envelope: ResponseEnvelope, exc: TransportError) -> None:
        """Record a transport failure; the caller re-raises."""
        logger.error("%s %s: %s", envelope.method, envelope.url, exc.summary)
        envelope.unset_cache_item()
        self._trace.clear(envelope.request_id)
        self._dispatch("on_failure", envelope.request_id, envelope.url, exception=exc)

    def _complete(self, envelope: ResponseEnvelope) -> ResponseEnvelope:
        """Classify a resolved live *envelope* and queue it for caching.

        Raises:
            HttpError: For a failed response unless errors are suppressed.
        """
        try:
            status = envelope.status_code
            context = {"code": status, "message": envelope.response.reason_phrase}
            error = envelope.http_error() or self.check_response(envelope)
            if error is not None:
                self._dispatch(
                    "on_failure", envelope.request_id, envelope.url,
                    context=context, exception=error,
                )
                if not envelope.suppress_errors:
                    raise error
                logger.debug("Suppressed failed request %s %s: HTTP %d", envelope.method, envelope.url, status)
                envelope.mark_failed()
            else:
                self._dispatch("on_success", envelope.request_id, envelope.url, context=context)
                item = envelope.cache_item
                if item is not None and self._cache is not None:
                    item.set(entry_from_response(envelope.response))
                    self._cache.save_deferred(item)
            envelope.set_hit(False)
        finally:
            envelope.unset_cache_item()
            self._trace.clear(envelope.request_id)
        return envelope

    def _dispatch(
        self,
        hook: str,
        request_id: str,
        url: str,
        context: Optional[dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
        data: Any = None,
    ) -> None:
        event = RequestEvent(request_id, url, dict(context or {}), exception, data)
        self._dispatcher.dispatch(hook, event)

    @contextmanager
    def _existence_check(self) -> Iterator[None]:
        """Suppress errors, retry and bypass the cache, restoring state afterwards."""
        saved = (self._suppress_errors, self._retry_enabled, self._cache_enabled)
        self._suppress_errors = True
        self._retry_enabled = True
        self._cache_enabled = False
        try:
            yield
        finally:
            self._suppress_errors, self._retry_enabled, self._cache_enabled = saved
