"""Shared HTTP transport for the object store client.

This module provides a thin wrapper around ``requests.Session`` so the store
client can share timeout policy, credentials, and header construction.

Dependencies:
    - ``requests`` for network I/O.
    - ``changeportal.adapters.api_errors.Transient`` for typed transport failures.

Call context:
    - Constructed by ``changeportal/adapters/store_client.py``.
    - Blocking; the store client runs every call in a worker thread so the
      event loop is never blocked. Retries are owned by the store client.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import requests
from requests import exceptions as req_exc

from changeportal.adapters.api_errors import Transient


@dataclass
class HttpConfig:
    """Timeout configuration for store HTTP calls.

    Attributes:
        request_timeout_s: Default timeout in seconds for JSON API calls.
    """
    request_timeout_s: float = 10.0


class StoreSession:
    """Shared requests wrapper with same-origin style credentials and JSON headers.

    This class is transport-only. Callers provide endpoint URLs and
    decide how to map non-2xx responses into store errors.
    """

    def __init__(self, api_key: Optional[str], cfg: HttpConfig) -> None:
        """Create a transport session.

        Args:
            api_key: Value for the ``X-API-Key`` header, or ``None`` when the
                session cookie carries authentication.
            cfg: Shared timeout settings.

        Side Effects:
            Creates a persistent ``requests.Session`` object so cookies issued by
            the authentication edge are replayed on every call.
        """
        self.session = requests.Session()
        self.api_key = api_key
        self.cfg = cfg

    def _headers(
        self,
        extra: Optional[Mapping[str, str]] = None,
        *,
        json_body: bool = False,
    ) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Cache-Control": "no-cache"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if json_body:
            headers["Content-Type"] = "application/json"
        if extra:
            headers.update(extra)
        return headers

    def get(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """Send one GET request.

        Raises:
            Transient: On timeout or connectivity failures.
        """
        try:
            return self.session.get(
                url,
                headers=self._headers(headers),
                timeout=timeout or self.cfg.request_timeout_s,
            )
        except (req_exc.Timeout, req_exc.ConnectionError) as exc:
            raise Transient(f"Timeout contacting {url}", context=f"GET {url}") from exc
        except req_exc.RequestException as exc:
            raise Transient(str(exc), context=f"GET {url}") from exc

    def send_json(
        self,
        method: str,
        url: str,
        *,
        json_body: Any,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """Send one JSON PUT/POST request.

        Raises:
            Transient: On timeout or connectivity failures.

        Side Effects:
            Serializes ``json_body`` with ``json.dumps`` before sending.
        """
        context = f"{method} {url}"
        try:
            return self.session.request(
                method,
                url,
                data=json.dumps(json_body),
                headers=self._headers(headers, json_body=True),
                timeout=timeout or self.cfg.request_timeout_s,
            )
        except (req_exc.Timeout, req_exc.ConnectionError) as exc:
            raise Transient(f"Timeout contacting {url}", context=context) from exc
        except req_exc.RequestException as exc:
            raise Transient(str(exc), context=context) from exc

    def close(self) -> None:
        self.session.close()


__all__ = ["HttpConfig", "StoreSession"]
