# === NAVMAP v1 ===
# {
#   "module": "GitlabArtifact.net",
#   "purpose": "Provide a shared HTTPX client for GitLab artifact downloads",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used for GitLab API requests."""

from __future__ import annotations

import contextlib
import logging
import ssl
import threading
import time
from typing import Callable, Dict, MutableMapping, Optional

import certifi
import httpx

from .logging_utils import mask_sensitive_data
from .settings import DownloadConfiguration

LOGGER = logging.getLogger("GitlabArtifact.net")

# --- Constants & globals -------------------------------------------------------

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
# Clients built from configuration, keyed by the serialised configuration.
_CONFIG_CLIENTS: Dict[str, httpx.Client] = {}
_CLIENT_FACTORY: Optional[Callable[[], httpx.Client]] = None
_DEFAULT_CONFIG = DownloadConfiguration()

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _request_hook(request: httpx.Request) -> None:
    meta: MutableMapping[str, object] = request.extensions.setdefault("artifact_meta", {})  # type: ignore[assignment]
    meta["start_time"] = time.perf_counter()
    LOGGER.debug(
        "gitlab-http-request",
        extra={
            "stage": "fetch",
            "extra_fields": mask_sensitive_data(
                {"method": request.method, "url": str(request.url), **dict(request.headers)}
            ),
        },
    )


def _response_hook(response: httpx.Response) -> None:
    meta: MutableMapping[str, object] = response.request.extensions.setdefault(  # type: ignore[assignment]
        "artifact_meta", {}
    )
    start = meta.get("start_time")
    if isinstance(start, (int, float)):
        meta["elapsed_sec"] = time.perf_counter() - start

    LOGGER.debug(
        "gitlab-http-response",
        extra={
            "stage": "fetch",
            "extra_fields": {
                "url": str(response.request.url),
                "status": response.status_code,
                "elapsed_sec": meta.get("elapsed_sec"),
            },
        },
    )


def _timeout_for(config: DownloadConfiguration) -> httpx.Timeout:
    return httpx.Timeout(
        connect=config.connect_timeout_sec,
        read=config.timeout_sec,
        write=config.timeout_sec,
        pool=config.pool_timeout_sec,
    )


def _limits_for(config: DownloadConfiguration) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.max_httpx_connections,
        max_keepalive_connections=config.max_keepalive_connections,
        keepalive_expiry=config.keepalive_expiry_sec,
    )


def _build_http_client(config: Optional[DownloadConfiguration]) -> httpx.Client:
    cfg = config or _DEFAULT_CONFIG
    transport = httpx.HTTPTransport(
        verify=_build_ssl_context(),
        http2=cfg.http2_enabled,
        limits=_limits_for(cfg),
        retries=0,
    )
    return httpx.Client(
        transport=transport,
        timeout=_timeout_for(cfg),
        headers=dict(cfg.polite_headers),
        trust_env=True,
        follow_redirects=True,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    clients = list(_CONFIG_CLIENTS.values())
    if _HTTP_CLIENT is not None:
        clients.append(_HTTP_CLIENT)
    for client in clients:
        with contextlib.suppress(Exception):
            client.close()
    _CONFIG_CLIENTS.clear()
    _HTTP_CLIENT = None


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    factory: Optional[Callable[[], httpx.Client]] = None,
    default_config: Optional[DownloadConfiguration] = None,
) -> None:
    """Override the shared HTTPX client or register a factory for tests."""

    if client is not None and factory is not None:
        raise ValueError("provide either a client or factory, not both")

    with _CLIENT_LOCK:
        global _HTTP_CLIENT, _CLIENT_FACTORY, _DEFAULT_CONFIG

        if default_config is not None:
            _DEFAULT_CONFIG = default_config

        if client is None:
            _close_client_unlocked()
        else:
            if _HTTP_CLIENT is not client:
                _close_client_unlocked()
            _HTTP_CLIENT = client

        _CLIENT_FACTORY = factory


def reset_http_client() -> None:
    """Reset the shared HTTPX client to its default configuration (test helper)."""

    with _CLIENT_LOCK:
        global _CLIENT_FACTORY, _DEFAULT_CONFIG
        _CLIENT_FACTORY = None
        _DEFAULT_CONFIG = DownloadConfiguration()
        _close_client_unlocked()


def get_http_client(config: Optional[DownloadConfiguration] = None) -> httpx.Client:
    """Return the shared HTTPX client for ``config``, creating it if necessary.

    A client installed through :func:`configure_http_client` (directly or by
    factory) is returned for every configuration.  Otherwise one client is
    kept per distinct download configuration, so callers with different
    timeouts or limits never share a connection pool.
    """

    with _CLIENT_LOCK:
        global _HTTP_CLIENT
        if _HTTP_CLIENT is not None:
            return _HTTP_CLIENT

        if _CLIENT_FACTORY is not None:
            candidate = _CLIENT_FACTORY()
            if not isinstance(candidate, httpx.Client):
                raise TypeError("client factory must return an httpx.Client")
            LOGGER.info(
                "using custom httpx client",
                extra={"stage": "fetch", "extra_fields": {"factory": repr(_CLIENT_FACTORY)}},
            )
            _HTTP_CLIENT = candidate
            return candidate

        cfg = config or _DEFAULT_CONFIG
        key = cfg.model_dump_json()
        client = _CONFIG_CLIENTS.get(key)
        if client is None:
            client = _build_http_client(cfg)
            _CONFIG_CLIENTS[key] = client
        return client
