"""HTTP client that fetches capability manifests from agent workloads."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..exceptions import DiscoveryProtocolError, NetworkError
from .manifest import CapabilityManifest, decode_manifest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class AgentClient:
    """Fetch and decode capability manifests over HTTP.

    The client owns an ``httpx.AsyncClient`` unless one is passed in (tests pass
    one backed by ``httpx.MockTransport``). Use it as an async context manager or
    call :meth:`aclose` when done.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch_manifest(self, url: str) -> CapabilityManifest:
        """GET ``url`` and decode the manifest it returns.

        Raises:
            NetworkError: the request could not be completed.
            DiscoveryProtocolError: non-2xx status or an empty body.
            MalformedManifestError: the body is not a valid manifest.
        """
        logger.debug("Fetching capability manifest from %s", url)
        try:
            response = await self._http.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise NetworkError(
                f"Request to {url} failed: {exc}", cause=exc, payload={"url": url}
            ) from exc

        if not response.is_success:
            raise DiscoveryProtocolError(
                f"Discovery endpoint {url} returned HTTP {response.status_code}",
                payload={"url": url, "status": response.status_code, "body": response.text[:200]},
            )
        if not response.content.strip():
            raise DiscoveryProtocolError(
                f"Response ({url}) is empty", payload={"url": url, "status": response.status_code}
            )

        manifest = decode_manifest(response.content)
        logger.debug(
            "Manifest from %s: agent %r with %d capabilities",
            url,
            manifest.id,
            len(manifest.capabilities),
        )
        return manifest

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "AgentClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["AgentClient", "DEFAULT_TIMEOUT"]
