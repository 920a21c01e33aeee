"""HTTP helper shared by the Drive and OAuth clients."""

import httpx

from rockcast.utils.retry import TransportError, classify_http_error


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """Send a request and turn failures into classified cloud errors.

    Raises:
        TransportError: Timeout or connection failure (retryable)
        CloudError: Non-success status, subclassed by :func:`classify_http_error`
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise TransportError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

    if response.is_error:
        raise classify_http_error(response.status_code, response.text[:200])
    return response
