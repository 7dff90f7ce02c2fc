# careers_crawl/http_client.py
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .models import FetchResponse

if TYPE_CHECKING:
    from .identity import Identity

LOG = logging.getLogger(__name__)


class NetworkError(Exception):
    """
    Raised by the transport for any fetch that did not produce a usable page.

    kind: "timeout" | "connection" | "proxy" | "http" | "redirect_loop" | "unknown"
    status: HTTP status for kind == "http"
    """

    def __init__(self, kind: str, message: str = "", *, status: int | None = None, url: str | None = None):
        super().__init__(message or kind)
        self.kind = kind
        self.status = status
        self.url = url

    def __repr__(self) -> str:
        return f"NetworkError(kind={self.kind!r}, status={self.status!r}, msg={str(self)!r})"


class HttpTransport:
    """
    Identity-aware HTTP transport.

    Every identity gets its own requests.Session so cookies, proxy and
    connection pool never leak between fingerprints. Status-based retries are
    left to the crawl's retry controller; urllib3 only retries raw connects.
    """

    def __init__(self, timeout: float = 30.0, max_redirects: int = 10):
        self.timeout = float(timeout)
        self.max_redirects = int(max_redirects)
        self._sessions: dict[int, requests.Session] = {}
        self._lock = threading.Lock()

    def _session_for(self, identity: Identity) -> requests.Session:
        with self._lock:
            sess = self._sessions.get(identity.id)
            if sess is None:
                sess = requests.Session()
                sess.cookies = identity.cookies
                sess.max_redirects = self.max_redirects
                retry = Retry(
                    total=1,
                    connect=1,
                    read=0,
                    status=0,
                    backoff_factor=0.5,
                    allowed_methods=frozenset(["GET", "HEAD"]),
                    raise_on_status=False,
                )
                adapter = HTTPAdapter(max_retries=retry, pool_connections=2, pool_maxsize=4)
                sess.mount("http://", adapter)
                sess.mount("https://", adapter)
                if identity.proxy:
                    sess.proxies.update({"http": identity.proxy, "https": identity.proxy})
                self._sessions[identity.id] = sess
            return sess

    def fetch(
        self,
        url: str,
        identity: Identity,
        headers: Mapping[str, str] | None = None,
    ) -> FetchResponse:
        """GET `url` as `identity`; raise NetworkError on anything but a 2xx page."""
        sess = self._session_for(identity)
        merged = dict(identity.headers)
        if headers:
            merged.update(headers)
        try:
            resp = sess.get(url, headers=merged, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.TooManyRedirects as e:
            raise NetworkError("redirect_loop", str(e), url=url) from e
        except requests.exceptions.ProxyError as e:
            raise NetworkError("proxy", str(e), url=url) from e
        except requests.exceptions.Timeout as e:
            raise NetworkError("timeout", str(e), url=url) from e
        except requests.exceptions.ConnectionError as e:
            raise NetworkError("connection", str(e), url=url) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError("unknown", str(e), url=url) from e

        if not 200 <= resp.status_code < 300:
            retry_after = resp.headers.get("Retry-After")
            msg = f"HTTP {resp.status_code} for {url}"
            if retry_after:
                msg += f" (Retry-After: {retry_after})"
            raise NetworkError("http", msg, status=resp.status_code, url=url)

        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return FetchResponse(
            status=resp.status_code,
            final_url=resp.url or url,
            body=resp.text,
            headers=dict(resp.headers),
        )

    def forget(self, identity: Identity) -> None:
        """Drop the session of a retired identity."""
        with self._lock:
            sess = self._sessions.pop(identity.id, None)
        if sess is not None:
            sess.close()

    def close(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for sess in sessions:
            try:
                sess.close()
            except Exception:
                LOG.debug("HttpTransport.close() swallow", exc_info=True)
