"""Provider API specification adapter.

Translates a stored provider configuration into concrete outbound requests
and parses heterogeneous provider responses into a ParsedOrderStatus.

Every provider is described by a ProviderApiSpec (field-name mapping). The
adapter interprets that mapping generically, so supporting a new provider is
a data change, not a code change.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from ...api.exceptions import ConfigurationError, ProviderResponseError
from ..domain.entities import ParsedOrderStatus, Provider, ProviderRequest

logger = logging.getLogger(__name__)

_MISSING = object()


class ProviderApiAdapter:
    """Builds order-status requests and parses responses for one provider.

    The provider's spec is validated at construction, so a misconfigured
    provider fails before any network call is made.

    Raises:
        ConfigurationError: If the URL or a required mapping key is missing
    """

    def __init__(self, provider: Provider):
        missing = provider.api_spec.missing_keys()
        if not provider.api_url:
            missing = ["api_url", *missing]
        if missing:
            raise ConfigurationError(
                f"Provider {provider.id} has an incomplete API specification",
                missing_keys=missing,
                provider_id=provider.id,
            )

        self.provider = provider
        self.spec = provider.api_spec

    @property
    def method(self) -> str:
        return (self.provider.http_method or "POST").upper()

    # ----------------------------------------
    # Request building
    # ----------------------------------------

    def build_order_status_request(self, provider_order_id: str) -> ProviderRequest:
        """Construct the status request for one upstream order.

        GET requests carry every field as query parameters. POST requests
        carry them in the body, form-encoded unless ``request_format`` is ``json``.
        The API key goes where ``auth_placement`` says: body fields, the
        query string or a header.

        Args:
            provider_order_id: Order id assigned by the provider

        Returns:
            ProviderRequest ready for the HTTP gateway
        """
        spec = self.spec
        fields = {
            spec.action_param: spec.status_action,
            spec.order_id_param: str(provider_order_id),
        }
        headers: dict[str, str] = {}
        params: dict[str, str] = {}

        if spec.auth_placement == "header":
            headers[spec.auth_header or "Authorization"] = self.provider.api_key
        elif spec.auth_placement == "query":
            params[spec.api_key_param] = self.provider.api_key
        else:
            fields = {spec.api_key_param: self.provider.api_key, **fields}

        if self.method == "GET":
            return ProviderRequest(
                method="GET",
                url=self.provider.api_url,
                headers=headers,
                params={**params, **fields},
                body=None,
                body_format=spec.request_format,
            )

        body_format = "json" if spec.request_format == "json" else "form"
        if body_format == "json":
            headers["Content-Type"] = "application/json"
        else:
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        return ProviderRequest(
            method=self.method,
            url=self.provider.api_url,
            headers=headers,
            params=params,
            body=fields,
            body_format=body_format,
        )

    # ----------------------------------------
    # Response parsing
    # ----------------------------------------

    @staticmethod
    def parse_raw_body(text: str | None) -> dict[str, Any]:
        """Decode a raw response body into a JSON object.

        Raises:
            ProviderResponseError: Empty, non-JSON or non-object body
        """
        if text is None or not text.strip():
            raise ProviderResponseError("Empty response from provider")

        try:
            data = json.loads(text)
        except ValueError as e:
            raise ProviderResponseError(
                f"Provider returned invalid JSON: {e}",
                response_body=text,
            )

        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"Provider returned {type(data).__name__}, expected an object",
                response_body=text,
            )
        return data

    def parse_order_status_response(self, raw: Any) -> ParsedOrderStatus:
        """Extract the mapped fields from a decoded provider response.

        Fields missing from the response stay None; an explicit zero is kept.

        Raises:
            ProviderResponseError: Empty/non-object body, or the provider
                reported an error through ``error_field``
        """
        if isinstance(raw, (str, bytes)):
            raw = self.parse_raw_body(raw.decode() if isinstance(raw, bytes) else raw)

        if not isinstance(raw, dict) or not raw:
            raise ProviderResponseError("Empty response from provider")

        spec = self.spec

        if spec.error_field:
            error = _lookup(raw, spec.error_field)
            if error is not _MISSING and error not in (None, "", False):
                raise ProviderResponseError(
                    f"Provider error: {error}",
                    response_body=json.dumps(raw, default=str),
                )

        status = _lookup(raw, spec.status_field)
        currency = _lookup(raw, spec.currency_field)

        return ParsedOrderStatus(
            status=None if status in (_MISSING, None) else str(status),
            remains=self._to_int(raw, spec.remains_field),
            start_count=self._to_int(raw, spec.start_count_field),
            charge=self._to_decimal(raw, spec.charge_field),
            currency=None if currency in (_MISSING, None) else str(currency),
        )

    def _to_int(self, raw: dict[str, Any], path: str | None) -> int | None:
        value = _lookup(raw, path)
        if value is _MISSING or value is None or value == "":
            return None
        if isinstance(value, bool):
            return None
        try:
            return int(Decimal(str(value).strip()))
        except (InvalidOperation, ValueError, OverflowError):
            logger.warning(
                f"Provider {self.provider.id}: ignoring non-numeric {path}={value!r}"
            )
            return None

    def _to_decimal(self, raw: dict[str, Any], path: str | None) -> Decimal | None:
        value = _lookup(raw, path)
        if value is _MISSING or value is None or value == "":
            return None
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            logger.warning(
                f"Provider {self.provider.id}: ignoring non-numeric {path}={value!r}"
            )
            return None


def _lookup(data: dict[str, Any], path: str | None) -> Any:
    """Resolve a dotted path (``data.status``) in nested dicts."""
    if not path:
        return _MISSING

    if path in data:
        return data[path]

    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current
