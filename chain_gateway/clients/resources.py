"""
Prompt Service HTTP Client

Resolves chain step resources against the prompt/template REST API.
"""

import httpx
import logging
from typing import Dict, Any, Optional

from chain_sdk.chains.models import StepType
from chain_sdk.chains.resources import ResourceDescriptor, ResourceNotFoundError

logger = logging.getLogger(__name__)

RESOURCE_PATHS = {
    StepType.PROMPT: "prompts",
    StepType.TEMPLATE: "templates",
}


class HttpResourceResolver:
    """
    ResourceResolver backed by the prompt service REST API

    GET {base_url}/api/v1/prompts/{id}?version=...
    GET {base_url}/api/v1/templates/{id}?version=...
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            base_url: Prompt service root URL
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            client: Pre-configured client (tests inject one with a mock transport)
        """
        self.base_url = base_url.rstrip('/')
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = headers

    async def resolve(
        self,
        resource_type: StepType,
        resource_id: str,
        resource_version: Optional[str] = None
    ) -> ResourceDescriptor:
        """
        Fetch a prompt or template

        Raises:
            ResourceNotFoundError: On HTTP 404
            httpx.HTTPError: On any other transport or HTTP failure
        """
        resource_type = StepType(resource_type)
        url = f"{self.base_url}/api/v1/{RESOURCE_PATHS[resource_type]}/{resource_id}"
        params = {"version": resource_version} if resource_version else None

        logger.debug(f"GET {url}")
        response = await self.client.get(url, params=params, headers=self.headers)
        if response.status_code == 404:
            raise ResourceNotFoundError(resource_type, resource_id, resource_version)
        response.raise_for_status()

        data = self._unwrap(response.json())
        return ResourceDescriptor(
            type=resource_type,
            resource_id=resource_id,
            version=data.get("version") or resource_version,
            data=data,
        )

    @staticmethod
    def _unwrap(payload: Any) -> Dict[str, Any]:
        """The API wraps bodies as {"success": ..., "data": {...}}"""
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        if isinstance(payload, dict):
            return payload
        return {"value": payload}

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
