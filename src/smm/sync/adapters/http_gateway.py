"""HTTP gateway adapter for provider status calls.

This adapter implements IProviderGateway and wraps the shared
ProviderClient, decoding every response body into a JSON object.
"""

from typing import TYPE_CHECKING, Any

from ..domain.entities import ProviderRequest
from ..domain.ports import IProviderGateway
from .provider_spec import ProviderApiAdapter

if TYPE_CHECKING:
    from ...api.client import ProviderClient


class ProviderHTTPGateway(IProviderGateway):
    """Executes ProviderRequests through the shared aiohttp client."""

    def __init__(self, client: "ProviderClient"):
        self.client = client

    async def send(
        self,
        request: ProviderRequest,
        timeout_seconds: float,
    ) -> dict[str, Any]:
        data = None
        json_body = None
        if request.body is not None:
            if request.body_format == "json":
                json_body = request.body
            else:
                data = request.body

        text = await self.client.request(
            request.method,
            request.url,
            headers=request.headers or None,
            params=request.params or None,
            data=data,
            json_body=json_body,
            timeout_seconds=timeout_seconds,
        )
        return ProviderApiAdapter.parse_raw_body(text)
