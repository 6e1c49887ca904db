"""HTTP plumbing: sessions and status-to-error mapping shared by every client."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import TransportError, UpstreamRejection

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def make_session(headers: dict | None = None) -> requests.Session:
    s = requests.Session()
    s.headers["Content-Type"] = "application/json"
    if headers:
        s.headers.update(headers)
    # Connection-level retries only; status retries are handled by RetryPolicy.
    retries = Retry(total=2, connect=2, read=0, status=0, backoff_factor=0.5)
    adapter = HTTPAdapter(max_retries=retries)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def _body_of(r):
    try:
        return r.json()
    except ValueError:
        return (r.text or "")[:500]


def send(session, method: str, url: str, *, timeout: float, allow_404: bool = False, **kwargs):
    """Issue one request. Returns the response, or None for 404 when allowed."""
    try:
        r = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise TransportError(f"{method} {_redact(url)} timed out after {timeout}s") from exc
    except requests.RequestException as exc:
        raise TransportError(f"{method} {_redact(url)} failed: {exc}") from exc

    if r.ok:
        return r
    # The caller never sees a failed response, so release a streamed connection here.
    try:
        if r.status_code == 404 and allow_404:
            return None
        if r.status_code in RETRYABLE_STATUS:
            raise TransportError(f"{method} {_redact(url)} -> {r.status_code}")
        body = _body_of(r)
        raise UpstreamRejection(f"{method} {_redact(url)} -> {r.status_code}: {body}", status=r.status_code, body=body)
    finally:
        r.close()


def _redact(url: str) -> str:
    """Drop the query string so api keys never reach the logs."""
    return url.split("?", 1)[0]
