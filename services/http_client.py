# services/http_client.py
"""
HTTP collaborator for list/detail requests.

Wraps httpx.AsyncClient and turns every failure (transport error, non-2xx
status, undecodable JSON) into a NetworkError so callers only handle one
exception type. Request timeouts are enforced here, not by the analysis core.
"""

import logging
import os
from typing import Any, Dict, Optional, Union

import httpx

from services.field_mapping.errors import NetworkError

logger = logging.getLogger(__name__)

# CA bundle path for SSL verification
CA_BUNDLE = os.getenv("REQUESTS_CA_BUNDLE") or os.getenv("SSL_CERT_FILE")

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def get_ssl_verify_setting(fieldmap_config: Dict[str, Any]) -> Union[str, bool]:
    """
    Determines SSL verification setting based on config.yaml.

    Returns:
        Union[str, bool]:
            - Path to CA bundle (str) if ssl_verification is "ca_bundle" and certs are available
            - False if ssl_verification is "disabled"
            - True as fallback (use system certs)
    """
    ssl_verification = str(fieldmap_config.get("ssl_verification", "enabled")).lower()

    if ssl_verification == "disabled":
        return False
    elif ssl_verification == "ca_bundle":
        return CA_BUNDLE or True
    else:
        return True


class HttpxRequestSender:
    """
    Sends one request and returns the decoded JSON body.

    An httpx.AsyncClient may be injected (it is then left open on aclose());
    otherwise one is created with the given timeout and verify settings.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30,
        verify: Union[str, bool] = True,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, verify=verify)

    @classmethod
    def from_config(cls, fieldmap_config: Dict[str, Any]) -> "HttpxRequestSender":
        return cls(
            timeout=float(fieldmap_config.get("request_timeout_seconds", 30)),
            verify=get_ssl_verify_setting(fieldmap_config),
        )

    async def __aenter__(self) -> "HttpxRequestSender":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __call__(self, method, url, headers=None, cookies=None, body=None) -> Any:
        return await self.send(method, url, headers=headers, cookies=cookies, body=body)

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> Any:
        """
        Perform one request.

        Raises:
            NetworkError: on transport failure, non-success status, or a
                response body that is not JSON.
        """
        request_headers = dict(DEFAULT_HEADERS)
        request_headers.update(headers or {})
        if cookies and not any(k.lower() == "cookie" for k in request_headers):
            request_headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in cookies.items())

        try:
            response = await self._client.request(
                (method or "GET").upper(),
                url,
                headers=request_headers,
                content=body.encode("utf-8") if isinstance(body, str) else body,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}", url=url) from e

        if not response.is_success:
            raise NetworkError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                url=url,
            )

        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                f"Response is not valid JSON: {e}",
                status_code=response.status_code,
                url=url,
            ) from e
