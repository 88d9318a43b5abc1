"""
Shared HTTP transport for Google Cloud JSON APIs with retry logic and error handling.
"""

import random
import time
from typing import Any, Dict, List, Optional

import requests
from requests import exceptions
from requests.auth import AuthBase

from .config import ConnectionConfig
from .logging_config import get_logger

logger = get_logger(__name__)

# HTTP status codes that are worth another attempt
RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)

# Status codes that guarantee the request was not applied
NOT_PROCESSED_STATUS_CODES = (429,)


class ApiError(Exception):
    """Raised when a request to a Google Cloud API fails."""

    def __init__(self,
                 message: str,
                 code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None,
                 response: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.errors = errors or []
        self.response = response


class BearerTokenAuth(AuthBase):
    """Attaches a static OAuth2 access token to each request."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, request):
        request.headers['Authorization'] = f'Bearer {self.token}'
        return request


def _parse_body(response: requests.Response) -> Dict[str, Any]:
    if not response.content:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {'message': response.text}
    return body if isinstance(body, dict) else {'data': body}


def _error_from_response(response: requests.Response) -> ApiError:
    body = _parse_body(response)
    error = body.get('error')
    if isinstance(error, dict):
        message = error.get('message') or response.reason
        return ApiError(message, code=error.get('code', response.status_code), errors=error.get('errors'), response=body)
    return ApiError(body.get('message') or response.reason or f'HTTP {response.status_code}',
                    code=response.status_code,
                    response=body)


class Connection:
    """Authenticated JSON-over-HTTP connection shared by the service clients."""

    def __init__(self,
                 config: Optional[ConnectionConfig] = None,
                 auth: Optional[AuthBase] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize the connection.

        Args:
            config: ConnectionConfig instance, uses default if None
            auth: requests auth handler; a bearer token from config is used if None
            session: requests Session to reuse, a new one is created if None
        """
        if config is None:
            from .config import config as default_config
            config = default_config.connection

        self.config = config
        self.session = session or requests.Session()

        if auth is None and config.access_token:
            auth = BearerTokenAuth(config.access_token)
        if auth is not None:
            self.session.auth = auth

        logger.debug(f'Initialized connection (timeout: {config.timeout}s, retries: {config.retry_attempts})')

    def make_request(self,
                     method: str,
                     url: str,
                     json: Optional[Dict[str, Any]] = None,
                     params: Optional[Dict[str, Any]] = None,
                     idempotent: bool = True) -> Dict[str, Any]:
        """
        Send a request and decode its JSON response, retrying transient failures.

        A non-idempotent request is only resent when the server cannot have
        seen it: a connect timeout, or a 429 rejection.

        Args:
            method: HTTP method
            url: Absolute URL
            json: Request body
            params: Query string parameters
            idempotent: Whether sending the request twice is harmless

        Returns:
            Decoded response body

        Raises:
            ApiError: If the API reports an error or all retry attempts fail
        """
        attempts = max(self.config.retry_attempts, 1)
        retry_errors = (exceptions.ConnectionError, exceptions.Timeout) if idempotent else (exceptions.ConnectTimeout,)
        retry_codes = RETRYABLE_STATUS_CODES if idempotent else NOT_PROCESSED_STATUS_CODES

        for attempt in range(attempts):
            try:
                logger.debug(f'{method} {url} attempt {attempt + 1}/{attempts}')
                response = self.session.request(method, url, json=json, params=params, timeout=self.config.timeout)
            except (exceptions.ConnectionError, exceptions.Timeout) as e:
                logger.warning(f'{method} {url} attempt {attempt + 1}/{attempts} failed: {e}')
                if not isinstance(e, retry_errors):
                    raise ApiError(f'{method} {url} failed and was not retried: {e}')
                if attempt < attempts - 1:
                    self._backoff(attempt)
                    continue
                raise ApiError(f'{method} {url} failed after {attempts} attempts: {e}')

            if response.ok:
                return _parse_body(response)

            error = _error_from_response(response)
            if response.status_code in retry_codes and attempt < attempts - 1:
                logger.warning(f'{method} {url} attempt {attempt + 1}/{attempts} returned {response.status_code}: '
                               f'{error.message}')
                self._backoff(attempt)
                continue

            logger.error(f'{method} {url} failed with {response.status_code}: {error.message}')
            raise error

        raise ApiError(f'{method} {url} failed after {attempts} attempts')

    def _backoff(self, attempt: int) -> None:
        # Exponential backoff with jitter
        delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
        time.sleep(delay)
