"""Async Manta client for the handful of storage and job calls storspan needs.

Usage:
    async with MantaClient.from_env() as manta:
        await manta.mkdirp("/user/stor/manta-storspan")
        job_id = await manta.create_job({"name": "...", "phases": [...]})
        await manta.add_job_keys(job_id, ["/user/stor/manta-storspan/obj0"])

Every failure, including transport errors, surfaces as a
:class:`~storspan.manta.errors.MantaError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

import httpx

from storspan.manta.errors import MantaError, error_from_response

logger = logging.getLogger(__name__)

# Default timeout for Manta requests (seconds)
DEFAULT_TIMEOUT = 60.0
# Connection timeout (seconds)
CONNECT_TIMEOUT = 10.0

DIRECTORY_TYPE = "application/json; type=directory"
LINK_TYPE = "application/json; type=link"
JOB_TYPE = "application/json; type=job"


class MantaClient:
    """Client for the Manta object store and compute job REST API.

    Args:
        base_url: Manta front door URL (``MANTA_URL``)
        user: Account login (``MANTA_USER``)
        auth: httpx auth hook, normally :class:`MantaSignatureAuth`
        timeout: Request timeout in seconds
        verify: Verify TLS certificates
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        auth: httpx.Auth | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user = user
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT),
            verify=verify,
            transport=transport,
            headers={"User-Agent": "manta-storspan"},
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )

    @classmethod
    def from_env(cls) -> MantaClient:
        """Create a client from the ``MANTA_*`` environment variables."""
        from storspan.manta.auth import MantaSignatureAuth
        from storspan.settings import (
            get_manta_key_id,
            get_manta_key_path,
            get_manta_url,
            get_manta_user,
            get_tls_insecure,
        )

        url = get_manta_url()
        user = get_manta_user()
        auth = MantaSignatureAuth.from_settings(
            user, get_manta_key_id(), get_manta_key_path()
        )
        return cls(url, user, auth=auth, verify=not get_tls_insecure())

    async def __aenter__(self) -> MantaClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the underlying connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        context: str,
        *,
        expected: tuple[int, ...] = (200, 201, 202, 204),
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, quote(path), **kwargs)
        except httpx.HTTPError as e:
            raise MantaError(f"{context}: {e}") from e
        if response.status_code not in expected:
            raise error_from_response(response, context)
        return response

    # ─── Storage ────────────────────────────────────────────────────────────

    async def info(self, path: str) -> dict[str, str]:
        """HEAD a path and return its response headers.

        Raises:
            MantaNotFoundError: if the path does not exist
        """
        response = await self._request("HEAD", path, f'HEAD "{path}"', expected=(200,))
        return dict(response.headers)

    async def mkdir(self, path: str) -> None:
        """Create (or update) a single directory."""
        await self._request(
            "PUT",
            path,
            f'mkdir "{path}"',
            headers={"Content-Type": DIRECTORY_TYPE},
        )

    async def mkdirp(self, path: str) -> None:
        """Create a directory and any missing parents.

        The top two components (``/<user>/<area>``) always exist and are never
        written.
        """
        parts = [p for p in path.split("/") if p]
        if len(parts) < 3:
            raise MantaError(f'mkdirp "{path}": path must be below /<user>/<area>')
        for depth in range(3, len(parts) + 1):
            await self.mkdir("/" + "/".join(parts[:depth]))

    async def put(self, path: str, data: bytes, *, copies: int = 1) -> None:
        """Upload an object with the given number of copies."""
        logger.debug("put %s (%d bytes, %d copies)", path, len(data), copies)
        await self._request(
            "PUT",
            path,
            f'put "{path}"',
            content=data,
            headers={
                "Content-Type": "application/octet-stream",
                "Durability-Level": str(copies),
            },
        )

    async def ln(self, source: str, target: str) -> None:
        """Create a SnapLink at ``target`` pointing at ``source``'s content."""
        await self._request(
            "PUT",
            target,
            f'snaplink "{source}" to "{target}"',
            headers={"Content-Type": LINK_TYPE, "Location": source},
        )

    async def unlink(self, path: str) -> None:
        """Delete an object or empty directory."""
        await self._request("DELETE", path, f'unlink "{path}"')

    # ─── Compute jobs ───────────────────────────────────────────────────────

    def _jobs_path(self, *parts: str) -> str:
        return "/".join(["", self.user, "jobs", *parts])

    async def create_job(self, spec: dict[str, Any]) -> str:
        """Create a job and return its id."""
        response = await self._request(
            "POST",
            self._jobs_path(),
            "create job",
            content=json.dumps(spec).encode(),
            headers={"Content-Type": JOB_TYPE},
        )
        location = response.headers.get("Location", "")
        job_id = location.rstrip("/").rsplit("/", 1)[-1]
        if not job_id:
            raise MantaError("create job: response has no job Location")
        return job_id

    async def add_job_keys(
        self, job_id: str, keys: Iterable[str], *, end: bool = False
    ) -> None:
        """Submit input keys to a running job, optionally ending its input."""
        body = "\n".join(keys) + "\n"
        await self._request(
            "POST",
            self._jobs_path(job_id, "live", "in"),
            f'add input to job "{job_id}"',
            content=body.encode(),
            headers={"Content-Type": "text/plain"},
        )
        if end:
            await self.end_job_input(job_id)

    async def end_job_input(self, job_id: str) -> None:
        """Close a job's input stream."""
        await self._request(
            "POST",
            self._jobs_path(job_id, "live", "in", "end"),
            f'end input for job "{job_id}"',
        )

    async def cancel_job(self, job_id: str) -> None:
        """Cancel a job."""
        await self._request(
            "POST",
            self._jobs_path(job_id, "live", "cancel"),
            f'cancel job "{job_id}"',
        )
