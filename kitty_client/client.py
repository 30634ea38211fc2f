"""
HTTP client for the composition launcher API.

Thin wrappers around `requests`; every function raises RuntimeError with the
server's error detail when a call fails.
"""

from typing import Any

import requests

DEFAULT_SERVER_URL = "http://127.0.0.1:8765"


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    detail = payload.get("detail") if isinstance(payload, dict) else None
    return detail or response.text or response.reason


def _request(
    method: str,
    path: str,
    server_url: str,
    json_body: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    timeout: float = 30,
) -> dict[str, Any]:
    try:
        response = requests.request(
            method,
            f"{server_url}{path}",
            json=json_body,
            params=params,
            timeout=timeout,
        )
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Error contacting launcher at {server_url}: {e}")

    if response.status_code >= 400:
        raise RuntimeError(f"{response.status_code}: {_error_detail(response)}")
    return response.json()


def _wait_params(wait: bool) -> dict[str, Any]:
    # Only add param if True (FastAPI will use default False if not present)
    return {"wait": "true"} if wait else {}


def get_status(server_url: str = DEFAULT_SERVER_URL) -> dict[str, Any]:
    """Fetch the status summary and session snapshot."""
    return _request("GET", "/status", server_url)


def list_containers(server_url: str = DEFAULT_SERVER_URL) -> dict[str, Any]:
    """Fetch the current container list."""
    return _request("GET", "/containers", server_url)


def select_container(
    name: str | None, server_url: str = DEFAULT_SERVER_URL
) -> dict[str, Any]:
    return _request("POST", "/containers/select", server_url, json_body={"name": name})


def list_compositions(server_url: str = DEFAULT_SERVER_URL) -> dict[str, Any]:
    """Fetch the selectable composition/version pairs."""
    return _request("GET", "/compositions", server_url)


def select_composition(
    composition: str, version: str, server_url: str = DEFAULT_SERVER_URL
) -> dict[str, Any]:
    return _request(
        "POST",
        "/compositions/select",
        server_url,
        json_body={"composition": composition, "version": version},
    )


def refresh(server_url: str = DEFAULT_SERVER_URL, wait: bool = False) -> dict[str, Any]:
    """Queue a manifest and container refresh."""
    return _request(
        "POST", "/refresh", server_url, params=_wait_params(wait), timeout=300
    )


def start(
    composition: str | None = None,
    version: str | None = None,
    server_url: str = DEFAULT_SERVER_URL,
    wait: bool = False,
) -> dict[str, Any]:
    """
    Queue a start of a composition/version (or of the server-side selection).

    With wait=True the call returns once the composition is up, which can
    take as long as image pulls do.
    """
    body = None
    if composition is not None or version is not None:
        body = {"composition": composition, "version": version}
    return _request(
        "POST",
        "/start",
        server_url,
        json_body=body,
        params=_wait_params(wait),
        timeout=None if wait else 30,
    )


def stop(
    project_id: str | None = None,
    server_url: str = DEFAULT_SERVER_URL,
    wait: bool = False,
) -> dict[str, Any]:
    """Queue a stop of a project (default: the active one)."""
    return _request(
        "POST",
        "/stop",
        server_url,
        json_body={"project_id": project_id},
        params=_wait_params(wait),
        timeout=None if wait else 30,
    )


def stop_all(server_url: str = DEFAULT_SERVER_URL, wait: bool = False) -> dict[str, Any]:
    """Queue a stop of every running project."""
    return _request(
        "POST",
        "/stop-all",
        server_url,
        params=_wait_params(wait),
        timeout=None if wait else 30,
    )


def list_notifications(
    since: int = 0, server_url: str = DEFAULT_SERVER_URL
) -> list[dict[str, Any]]:
    """Fetch user-visible notifications newer than `since`."""
    result = _request("GET", "/notifications", server_url, params={"since": since})
    return result["notifications"]
