"""
Low-level HTTP request library for ProCon.IP controller communication.
This module handles all HTTP requests with automatic retry logic and proper error handling.
"""
import asyncio
import logging
import aiohttp


_LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5  # seconds, multiplied by attempt number for each retry
REQUEST_ATTEMPTS = 3  # maximum number of retry attempts


class ApiResponseError(Exception):
    """Exception raised when the controller answers with a non-200 status."""
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")


class BadCredentialsError(ApiResponseError):
    """Exception raised when the controller rejects the basic auth credentials."""


def build_auth(basic_auth: bool, username: str, password: str) -> aiohttp.BasicAuth | None:
    """Return the BasicAuth helper for the configured credentials, if enabled."""
    if not basic_auth or not username:
        return None
    return aiohttp.BasicAuth(username, password or "")


async def check_controller_availability(base_url: str, timeout: int = 15) -> bool:
    """
    Check if the controller web interface is reachable by sending a HEAD request.

    Args:
        base_url: Controller base URL, e.g. http://192.168.2.3
        timeout: Timeout in seconds for the HEAD request

    Returns:
        True if the controller answered (any status below 500), False otherwise
    """
    try:
        timeout_config = aiohttp.ClientTimeout(total=timeout)
        session = aiohttp.ClientSession(timeout=timeout_config)

        try:
            async with session.head(base_url) as response:
                if response.status >= 500:
                    _LOGGER.warning("Controller is not reachable (status %s)", response.status)
                    return False
                return True
        finally:
            await session.close()

    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout while checking controller URL")
        return False
    except Exception as e:
        _LOGGER.error("Error while checking controller availability: %s", e)
        return False


async def make_request(
    method: str,
    url: str,
    auth: aiohttp.BasicAuth | None = None,
    params: dict = None,
    data: str | dict | None = None,
    timeout: float = REQUEST_TIMEOUT,
    max_attempts: int = REQUEST_ATTEMPTS,
) -> str:
    """
    Make an HTTP request with automatic retry on timeout.

    Args:
        method: HTTP method (GET or POST)
        url: Target URL for the request
        auth: Optional basic auth credentials
        params: URL query parameters (optional)
        data: Form body for POST requests (optional)
        timeout: Base timeout in seconds (multiplied by attempt number for each retry)
        max_attempts: Maximum number of retry attempts

    Returns:
        Response body as text

    Raises:
        asyncio.TimeoutError: If all retry attempts timeout
        BadCredentialsError: If the controller answers 401
        ApiResponseError: For any other non-200 answer
        aiohttp.ClientError: For connection errors (not retried)
    """
    method = method.upper()

    for attempt in range(max_attempts):
        try:
            # Create session with timeout that increases with each attempt
            timeout_config = aiohttp.ClientTimeout(total=timeout * (attempt + 1))
            session = aiohttp.ClientSession(timeout=timeout_config, auth=auth)

            try:
                if method == "GET":
                    response = await session.get(url, params=params)
                elif method == "POST":
                    headers = {"Content-Type": "application/x-www-form-urlencoded"}
                    response = await session.post(url, params=params, data=data, headers=headers)
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")

                return await _process_response(response, url)

            finally:
                await session.close()

        except (asyncio.TimeoutError, TimeoutError):
            if attempt < max_attempts - 1:
                # Retry on timeout
                continue
            _LOGGER.warning(
                "Timeout on %s request to %s after %s attempts",
                method, url, max_attempts
            )
            raise

    raise ValueError("max_attempts must be at least 1")


async def _process_response(response, url: str) -> str:
    """
    Process HTTP response and return its text.

    Raises:
        BadCredentialsError: On HTTP 401
        ApiResponseError: On any other non-200 status
    """
    text = await response.text()

    if response.status == 200:
        return text

    if response.status == 401:
        _LOGGER.debug("Controller at %s rejected the credentials", url)
        raise BadCredentialsError(response.status, text)

    _LOGGER.debug(
        "Received error response from %s: status %s, body preview: %s",
        url, response.status, text[:200]
    )
    raise ApiResponseError(response.status, text)
