"""
REST API client base class

Shared HTTP plumbing for the payment rails:
- retries for idempotent requests (tenacity)
- error classification (no response vs error response)
- injectable transport and per-request timeouts
"""
import asyncio
import json
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass
from enum import Enum
import httpx
import logging
from datetime import datetime

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


class HTTPMethod(Enum):
    """HTTP methods"""
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


# Safe to replay after a transport failure
IDEMPOTENT_METHODS = {HTTPMethod.GET.value, HTTPMethod.DELETE.value}


@dataclass
class APIResponse:
    """API response wrapper"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class APIError(Exception):
    """Error response from the API"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
        request_id: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        super().__init__(self.message)

    def __str__(self):
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.request_id:
            parts.append(f"Request ID: {self.request_id}")
        return " | ".join(parts)

    @property
    def body(self) -> Optional[dict]:
        """JSON object body of the failed response, if any."""
        if self.response is not None and isinstance(self.response.data, dict):
            return self.response.data
        return None


class TransportError(APIError):
    """Network unreachable or request timed out (no response)"""
    pass


class RetryableAPIError(APIError):
    """Transient API error, retried for idempotent requests"""

    def __init__(self, message: str, status_code: Optional[int], response: Optional['APIResponse'], retry_after: Optional[float] = None):
        super().__init__(message=message, status_code=status_code, response=response, request_id=response.request_id if response else None)
        self.retry_after = retry_after


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    REST API client base class

    Subclasses implement the concrete endpoints. The underlying
    `httpx.AsyncClient` may be injected (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: API base URL
            timeout: default request timeout (seconds)
            max_retries: retries for idempotent requests
            retry_delay: base backoff (seconds)
            headers: default request headers (tenant, device, ...)
            auth_token: bearer token, passed explicitly instead of read from global state
            client: preconfigured httpx client (owned by the caller)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "KioskPayments/1.0"
        }
        if headers:
            self.default_headers.update(headers)

        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    async def client(self) -> httpx.AsyncClient:
        """Get or lazily create the HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True
            )
            self._owns_client = True
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _error_from_response(self, response: APIResponse) -> APIError:
        message = f"API request failed with status {response.status_code}"
        if response.data and isinstance(response.data, dict):
            message = (
                response.data.get("message") or
                response.data.get("error") or
                response.data.get("detail") or
                message
            )
        return APIError(
            message=str(message),
            status_code=response.status_code,
            response=response,
            request_id=response.request_id
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        retry: Optional[bool] = None,
    ) -> APIResponse:
        """
        Send an HTTP request

        Args:
            method: HTTP method
            endpoint: path relative to base_url
            params: query parameters
            json_data: JSON body
            headers: extra headers
            timeout: per-request timeout (seconds), overrides the default
            retry: force/disable retries; defaults to idempotent methods only

        Returns:
            APIResponse

        Raises:
            TransportError: no response (network failure or timeout)
            APIError: non-2xx response
        """
        if isinstance(method, HTTPMethod):
            method = method.value
        if retry is None:
            retry = method in IDEMPOTENT_METHODS

        url = self._build_url(endpoint)

        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)

        effective_timeout = self.timeout if timeout is None else timeout

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            client = await self.client
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=request_headers,
                timeout=httpx.Timeout(effective_timeout),
            )

            elapsed = (datetime.now() - start_time).total_seconds() * 1000

            content_type = response.headers.get("content-type", "")
            response_data = None

            if "application/json" in content_type:
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                elapsed_ms=elapsed,
                request_id=response.headers.get("x-request-id")
            )
            logger.debug(f"API Response: {method} {url} -> {api_response.status_code} ({elapsed:.0f}ms)")

            if api_response.is_error and api_response.status_code in RETRY_STATUS_CODES:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    retry_header = api_response.headers.get("retry-after")
                    try:
                        if retry_header:
                            retry_after = float(retry_header)
                    except (TypeError, ValueError):
                        retry_after = None
                    if retry_after and retry:
                        await asyncio.sleep(retry_after)

                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                    retry_after=retry_after,
                )

            if api_response.is_error:
                raise self._error_from_response(api_response)

            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt((self.max_retries if retry else 0) + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request timeout after {effective_timeout}s") from exc
        except httpx.TransportError as exc:
            raise TransportError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            if exc.response is not None:
                raise self._error_from_response(exc.response) from exc
            raise APIError(exc.message) from exc
        except APIError:
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during API request: {exc}")
            raise APIError(f"Unexpected error: {exc}") from exc

    async def get(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, **kwargs)

    async def post(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, **kwargs)

    async def delete(self, endpoint: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.DELETE, endpoint, **kwargs)
