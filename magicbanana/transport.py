import httpx


def open_client(timeout: float) -> httpx.AsyncClient:
    """Every vendor call goes through here so the transport can be replaced."""
    return httpx.AsyncClient(timeout=timeout)
