"""
HTTP client helper with standardized timeout configuration.

Every outbound Telegram Bot API call goes through a client built here so a
slow or hanging API cannot block a webhook invocation or a sweep run.
"""

import httpx


def get_httpx_timeout() -> httpx.Timeout:
    """
    Get standardized timeout configuration for HTTP clients.

    Returns:
        httpx.Timeout with bounded connect/read/write/pool timeouts
    """
    return httpx.Timeout(
        10.0,  # Default timeout for all operations
        connect=5.0,  # Time to establish connection
        read=10.0,  # Time to read response (sendMediaGroup with 10 items can be slow)
        write=5.0,  # Time to write request
        pool=5.0,  # Time to get connection from pool
    )


def create_httpx_client(base_url: str = "") -> httpx.AsyncClient:
    """
    Create an httpx.AsyncClient with standardized timeout configuration.

    Args:
        base_url: Optional base URL (e.g. https://api.telegram.org/bot<token>)

    Returns:
        httpx.AsyncClient configured with appropriate timeouts
    """
    return httpx.AsyncClient(base_url=base_url, timeout=get_httpx_timeout())
