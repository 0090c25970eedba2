# agent/api_client.py
from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Iterable, List, Optional
from urllib.parse import urlencode, urljoin

import pydantic

from ..config import Credentials
from ..errors import APIError, InvalidJobError
from ..model import Job, JobStatus
from ..ui.console import get_console


class APIClient:
    """HTTP client for the job API (login, job queue, status updates)."""

    def __init__(self, base_url: str, credentials: Credentials, timeout: float = 60.0):
        """
        Initialize API client.

        Args:
            base_url: Base URL of the API (e.g., "https://api.example.com")
            credentials: Login data; receives the token on every login
            timeout: Socket timeout for JSON requests, in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout

    def url(self, path: str) -> str:
        return urljoin(self.base_url + "/", path.lstrip("/"))

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        auth: bool = True,
    ) -> dict:
        """
        Make an HTTP request to the API.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path including the query string
            data: Optional JSON data to send in request body
            auth: Send the bearer token

        Returns:
            Parsed JSON response as dictionary (empty for an empty body)

        Raises:
            APIError: If the request fails
        """
        url = self.url(path)
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if auth:
            headers.update(self.credentials.authorization())

        body = None
        if data is not None:
            body = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(url, data=body, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            raise APIError(f"{method} {url} failed: {e.code} {e.reason}. {error_body}".rstrip()) from e
        except urllib.error.URLError as e:
            raise APIError(f"Network error calling {url}: {e.reason}") from e
        except OSError as e:
            raise APIError(f"Network error calling {url}: {e}") from e

        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise APIError(f"Invalid JSON response from {url}: {e}") from e
        if not isinstance(parsed, dict):
            raise APIError(f"Unexpected response from {url}: {raw[:200]}")
        return parsed

    def login(self) -> str:
        """Exchange email/password for a token and store it on the credentials."""
        response = self._request(
            "POST",
            "/auth/login",
            data={"email": self.credentials.email, "password": self.credentials.password},
            auth=False,
        )
        token = response.get("data")
        if isinstance(token, str) and token:
            self.credentials.token = token
            return token
        message = response.get("message") or "no error message in response"
        raise APIError(f"failed to login to {self.url('/auth/login')}: {message}")

    def fetch_unclaimed_job(
        self,
        enabled_platforms: Iterable[Any],
        enabled_jobs: Iterable[Any],
        enabled_targets: Iterable[Any],
    ) -> Optional[Job]:
        """
        Claim an unclaimed job matching the enabled sets.

        Returns:
            Job if one is available, None otherwise

        Raises:
            APIError: On network or API failure
            InvalidJobError: A job was handed out but cannot be parsed
        """
        self.login()
        query = urlencode({
            "platform": _join(enabled_platforms),
            "type": _join(enabled_jobs),
            "target": _join(enabled_targets),
        })
        response = self._request("GET", f"/job/v2/unclaimed?{query}")

        status = response.get("status")
        if status == "no jobs":
            return None
        if status == "error":
            raise APIError(f"failed to fetch unclaimed job: {response.get('message', '')}")

        data = response.get("data")
        if not data:
            return None
        try:
            return Job.model_validate(data)
        except pydantic.ValidationError as e:
            job_id = data.get("id") if isinstance(data, dict) else None
            if not job_id:
                raise APIError(f"received a job without an id: {e}") from e
            raise InvalidJobError(str(job_id), f"invalid job payload: {e}") from e

    def update_job_status(self, job_id: str, status: JobStatus, message: str = "") -> None:
        """Report a status transition for a job."""
        if not job_id:
            raise APIError("job id is empty")
        self.login()
        self._request(
            "PATCH",
            f"/job/v2/{job_id}/status",
            data={"status": status.value, "message": message},
        )

    def fetch_ignored_files(self) -> List[str]:
        """Fetch the release ignore list from the shared automation configuration."""
        self.login()
        response = self._request("GET", "/automation/configuration")
        if response.get("status") == "error":
            raise APIError(f"failed to fetch shared configuration: {response.get('message', '')}")
        release = (response.get("data") or {}).get("release") or {}
        ignored = release.get("ignoredFiles", release.get("ignored_files"))
        if not isinstance(ignored, list):
            raise APIError("shared configuration has no release ignore list")
        get_console().print_debug(f"loaded {len(ignored)} ignored file patterns from the API")
        return [str(p) for p in ignored]


def _join(values: Iterable[Any]) -> str:
    return ",".join(sorted(getattr(v, "value", v) for v in values))
