"""Shared fixtures: an in-memory Manta that runs jobs by calling back over HTTP."""

from __future__ import annotations

import asyncio
import re
import socket
from collections.abc import Callable

import httpx
import pytest

from storspan.discovery.config import RunConfig
from storspan.manta.errors import MantaError, MantaNotFoundError

ROOT = "/jill/stor/manta-storspan"

_REPORT_URL = re.compile(r'curl -T- (\S+)/"\$\(mdata-get sdc:server_uuid\)"')


class FakeManta:
    """In-memory stand-in for :class:`storspan.manta.client.MantaClient`.

    Jobs are "run" by PUTting each input key to the callback URL found in the
    job's map phase, using ``node_for(key)`` as the reporting node id.  With
    ``node_for=None`` inputs are recorded but never reported.

    ``fail`` maps a method name to the exception that method raises.
    Reports that cannot be delivered are kept in ``report_errors``.
    """

    def __init__(
        self,
        node_for: Callable[[str], str] | None = None,
        *,
        existing: tuple[str, ...] = (),
        fail: dict[str, Exception] | None = None,
    ) -> None:
        self.node_for = node_for
        self.fail = dict(fail or {})
        self.objects: dict[str, bytes] = {p: b"" for p in existing}
        self.dirs: set[str] = set()
        self.links: dict[str, str] = {}
        self.jobs: dict[str, dict] = {}
        self.inputs: list[str] = []
        self.cancelled: list[str] = []
        self.closed = False
        self.report_urls: dict[str, str] = {}
        self.report_errors: list[BaseException] = []
        self._reports: set[asyncio.Task] = set()

    def _check(self, method: str) -> None:
        if method in self.fail:
            raise self.fail[method]

    async def info(self, path: str) -> dict[str, str]:
        self._check("info")
        if path in self.objects or path in self.dirs:
            return {}
        raise MantaNotFoundError(f'HEAD "{path}": 404 Not Found', status=404)

    async def mkdirp(self, path: str) -> None:
        self._check("mkdirp")
        self.dirs.add(path)

    async def put(self, path: str, data: bytes, *, copies: int = 1) -> None:
        self._check("put")
        self.objects[path] = data

    async def ln(self, source: str, target: str) -> None:
        self._check("ln")
        if source not in self.objects:
            raise MantaNotFoundError(f'snaplink "{source}": 404', status=404)
        self.objects[target] = self.objects[source]
        self.links[target] = source

    async def unlink(self, path: str) -> None:
        self._check("unlink")
        if self.objects.pop(path, None) is None:
            raise MantaNotFoundError(f'unlink "{path}": 404', status=404)

    async def create_job(self, spec: dict) -> str:
        self._check("create_job")
        job_id = f"job-{len(self.jobs)}"
        self.jobs[job_id] = spec
        match = _REPORT_URL.search(spec["phases"][0]["exec"])
        if match:
            self.report_urls[job_id] = match.group(1)
        return job_id

    async def add_job_keys(self, job_id: str, keys, *, end: bool = False) -> None:
        self._check("add_job_keys")
        for key in keys:
            self.inputs.append(key)
            if self.node_for is not None:
                task = asyncio.create_task(
                    self.report(job_id, key, self.node_for(key))
                )
                self._reports.add(task)
                task.add_done_callback(self._report_done)

    def _report_done(self, task: asyncio.Task) -> None:
        self._reports.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.report_errors.append(task.exception())

    async def report(self, job_id: str, key: str, node_id: str) -> httpx.Response:
        """Deliver a task report exactly as ``curl -T-`` would."""
        async with httpx.AsyncClient() as client:
            response = await client.put(
                f"{self.report_urls[job_id]}/{node_id}", content=f"{key}\n"
            )
        response.raise_for_status()
        return response

    async def cancel_job(self, job_id: str) -> None:
        self._check("cancel_job")
        self.cancelled.append(job_id)

    async def close(self) -> None:
        self.closed = True


def sequence_of(key: str) -> int:
    """Sequence number of a marker path (``.../obj12`` → 12)."""
    return int(key.rsplit("obj", 1)[1])


@pytest.fixture
def free_port() -> int:
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def ipv6_loopback() -> str:
    """Skip unless this host can listen on the IPv6 loopback."""
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as sock:
            sock.bind(("::1", 0))
    except OSError:
        pytest.skip("IPv6 loopback unavailable")
    return "::1"


@pytest.fixture
def make_config(free_port: int) -> Callable[..., RunConfig]:
    """Build a loopback RunConfig, overriding any field."""

    def _make(**overrides) -> RunConfig:
        values = {
            "address": "127.0.0.1",
            "port": free_port,
            "expected_nodes": 1,
            "root": ROOT,
        }
        values.update(overrides)
        return RunConfig(**values)

    return _make


@pytest.fixture
def manta_error() -> MantaError:
    return MantaError("PUT: 503 Service Unavailable", status=503)
