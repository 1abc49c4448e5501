from http import HTTPStatus
from typing import Any

import httpx

from geo_resolver.errors import ProviderError
from geo_resolver.field_mapping import MISSING, lookup_path
from geo_resolver.registry import Provider


class ProviderClient:
    """HTTP client for config-described geolocation providers.

    Performs a single GET per call, bounded by the provider's timeout, and maps
    every failure mode (transport error, timeout, non-2xx status, undecodable
    body, body-level error flag) into a ProviderError. There is no retry at
    this layer; retries and failover belong to the resolver.
    """

    async def fetch(self, provider: Provider, ip: str) -> dict[str, Any]:
        """Query `provider` for `ip` and return its decoded JSON payload."""
        url = provider.build_url(ip)
        try:
            async with httpx.AsyncClient(timeout=provider.timeout) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise ProviderError(provider.name, f"Request timed out after {provider.timeout}s", exc) from exc
        except httpx.RequestError as exc:
            raise ProviderError(provider.name, f"Request to IP provider failed: {repr(exc)}", exc) from exc

        self._handle_http_errors(provider, response)

        data = self._parse_json(provider, response)
        self._handle_provider_status(provider, data)

        return data

    def _handle_http_errors(self, provider: Provider, response: httpx.Response) -> None:
        """Anything outside 2xx counts as a failed attempt."""
        status_code = response.status_code

        if status_code == HTTPStatus.TOO_MANY_REQUESTS:
            raise ProviderError(provider.name, "IP provider rate limit or quota exceeded (HTTP 429).")

        if not HTTPStatus.OK <= status_code < HTTPStatus.MULTIPLE_CHOICES:
            raise ProviderError(provider.name, f"IP provider returned HTTP {status_code}: {response.text}")

    @staticmethod
    def _parse_json(provider: Provider, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                provider.name, f"Failed to decode IP provider response as JSON: {exc}", exc
            ) from exc

        if not isinstance(data, dict):
            raise ProviderError(provider.name, f"Expected a JSON object, got {type(data).__name__}")
        return data

    @staticmethod
    def _handle_provider_status(provider: Provider, data: dict[str, Any]) -> None:
        """Detect errors that providers report inside a 200 response body.

        ip-api.com answers {"status": "fail", "message": "private range"};
        ipapi.co answers {"error": true, "reason": "Reserved IP Address"}.
        """
        check = provider.status_check
        if check is None:
            return

        value = lookup_path(data, tuple(check.path.split(".")))
        if check.success_value is not None:
            failed = value != check.success_value
        else:
            failed = value == check.failure_value
        if not failed:
            return

        message = None
        if check.message_path:
            message = lookup_path(data, tuple(check.message_path.split(".")))
        if message is MISSING or not message:
            message = f"Unknown error from {provider.name}"
        raise ProviderError(provider.name, str(message))
