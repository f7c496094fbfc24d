"""HTTP transport for the downstream SCIM service.

All requests go through one ``requests.Session`` configured up front with
the SCIM media type, credentials, TLS and proxy settings.  429 responses
are retried here so callers only ever see a final answer; every other
status is handed back untouched for ``downstream`` to classify.
"""

import json
import time
from typing import Any, Dict, Optional

import requests
import structlog
from requests.structures import CaseInsensitiveDict

SCIM_MEDIA_TYPE = "application/scim+json"

# 429 Too Many Requests (RFC 6585)
_MAX_RETRIES = 3
_DEFAULT_RETRY_AFTER = 2  # seconds


class SCIMResponse:
    """Status, headers and body of one SCIM call."""

    def __init__(self, status_code: int, headers: Dict[str, str], body: str):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers)
        self.body = body
        self._parsed = False
        self._json: Any = None

    @classmethod
    def from_requests(cls, resp: requests.Response) -> "SCIMResponse":
        return cls(resp.status_code, dict(resp.headers), resp.text)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decoded body, ``None`` when empty.  Raises ``ValueError`` on bad JSON."""
        if not self._parsed:
            self._json = json.loads(self.body) if self.body else None
            self._parsed = True
        return self._json

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def __repr__(self):
        return f"SCIMResponse({self.status_code})"


class SCIMClient:
    """Session-backed client for a SCIM 2.0 endpoint.

    Transport failures (DNS, refused connections, timeouts) surface as
    ``requests.RequestException``.

    Args:
        base_url:       Root URL of the SCIM endpoint (e.g. ``https://example.com/scim/v2``)
        token:          Bearer token; takes precedence over basic auth
        username:       Username for HTTP Basic authentication
        password:       Password for HTTP Basic authentication
        tls_no_verify:  Skip TLS certificate verification (for self-signed certs)
        timeout:        Per-request timeout in seconds
        proxy:          HTTP/HTTPS proxy URL
        ca_bundle:      Path to custom CA certificate bundle file
        session:        Pre-built ``requests.Session`` to configure and reuse
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        tls_no_verify: bool = False,
        timeout: float = 30,
        proxy: Optional[str] = None,
        ca_bundle: Optional[str] = None,
        session: Optional[requests.Session] = None,
        logger=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._log = logger or structlog.get_logger(__name__)

        self.session = session or requests.Session()
        self.session.headers.update({"Accept": SCIM_MEDIA_TYPE, "Content-Type": SCIM_MEDIA_TYPE})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        elif username and password:
            self.session.auth = (username, password)
        if ca_bundle:
            self.session.verify = ca_bundle
        elif tls_no_verify:
            self.session.verify = False
        if proxy:
            self.session.proxies.update({"http": proxy, "https": proxy})

    # -- Public API ----------------------------------------------------------

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> SCIMResponse:
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        return self._request("POST", path, data=json.dumps(payload).encode("utf-8"))

    def delete(self, path: str) -> SCIMResponse:
        return self._request("DELETE", path)

    # -- Internals -----------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> SCIMResponse:
        """Send one request, sleeping through up to ``_MAX_RETRIES`` 429 answers."""
        url = f"{self.base_url}{path}"
        log = self._log.bind(method=method, url=url)
        log.debug("scim request", headers=redact_auth(dict(self.session.headers)),
                  params=kwargs.get("params"))

        attempt = 0
        while True:
            resp = SCIMResponse.from_requests(
                self.session.request(method, url, timeout=self.timeout, **kwargs)
            )
            if resp.status_code != 429 or attempt >= _MAX_RETRIES:
                break
            attempt += 1
            delay = _parse_retry_after(resp.header("Retry-After"))
            log.warning("throttled, retrying", attempt=attempt, retry_after=delay)
            time.sleep(delay)

        log.debug("scim response", status=resp.status_code, attempts=attempt + 1)
        return resp


def _parse_retry_after(value: Optional[str]) -> float:
    """Seconds to wait for a Retry-After header.

    Only the delay-seconds form (RFC 7231 Section 7.1.3) is understood; a
    missing or HTTP-date value falls back to ``_DEFAULT_RETRY_AFTER``.
    Negative values are clamped to zero.
    """
    if not value:
        return _DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return _DEFAULT_RETRY_AFTER


def redact_auth(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of ``headers`` with any Authorization value replaced by ``***REDACTED***``."""
    return {
        k: ("***REDACTED***" if k.lower() == "authorization" else v)
        for k, v in headers.items()
    }
