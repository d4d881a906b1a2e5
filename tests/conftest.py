"""Shared pytest fixtures for vaws tests."""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

import pytest

from vaws.service.models import (
    JumpHostCandidate,
    PrivateEndpoint,
    ResourceDetail,
    ResourcePage,
    ResourceSummary,
)
from vaws.tunnels.models import TunnelTarget


class FakeSession:
    """Session that opens plain loopback connections and records teardown."""

    def __init__(self, port: int = 9, host: str = "127.0.0.1", fail_close: bool = False):
        self.host = host
        self.port = port
        self.fail_close = fail_close
        self.alive = True
        self.close_calls = 0

    @property
    def is_alive(self) -> bool:
        return self.alive

    async def open_stream(self):
        return await asyncio.open_connection(self.host, self.port)

    async def close(self) -> None:
        self.close_calls += 1
        self.alive = False
        if self.fail_close:
            raise RuntimeError("session already terminated")


class FakeResourceService:
    """In-memory ResourceService with instrumentation.

    Listing works in one of two modes: ``names`` are sliced by the requested
    page size, or ``pages`` fixes the page boundaries explicitly. Summary ids
    are ``id-00``, ``id-01``... in listing order.
    """

    def __init__(
        self,
        names: Sequence[str] = (),
        pages: Sequence[Sequence[str]] | None = None,
        failing: Sequence[str] = (),
        delay: float = 0.0,
        slow: dict[str, float] | None = None,
        children: dict[str, list[str]] | None = None,
        candidates: Sequence[JumpHostCandidate] = (),
        endpoint: PrivateEndpoint | None = None,
    ):
        if pages is None:
            self.pages = None
            all_names = list(names)
        else:
            self.pages = [list(page) for page in pages]
            all_names = [name for page in self.pages for name in page]

        self.summaries = [
            ResourceSummary(id=f"id-{index:02d}", name=name)
            for index, name in enumerate(all_names)
        ]
        self.by_id = {summary.id: summary for summary in self.summaries}
        self.failing = set(failing)
        self.delay = delay
        self.slow = slow or {}
        self.children = children or {}
        self.candidates = list(candidates)
        self.endpoint = endpoint

        self.page_error: Exception | None = None
        self.page_error_token: str | None = None
        self.children_error: Exception | None = None
        self.candidates_error: Exception | None = None
        self.candidates_gate: asyncio.Event | None = None
        self.endpoint_error: Exception | None = None
        self.session_error: Exception | None = None
        self.session_delay = 0.0
        self.session_port = 9

        self.list_calls: list[str | None] = []
        self.describe_calls: list[str] = []
        self.candidate_calls = 0
        self.endpoint_calls: list[str] = []
        self.session_calls: list[tuple] = []
        self.sessions: list[FakeSession] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_page(self, resource_type, token, page_size):
        self.list_calls.append(token)
        if self.page_error is not None and token == self.page_error_token:
            raise self.page_error

        if self.pages is not None:
            index = int(token or 0)
            offset = sum(len(page) for page in self.pages[:index])
            chunk = self.summaries[offset : offset + len(self.pages[index])]
            has_more = index + 1 < len(self.pages)
            return ResourcePage(items=chunk, next_token=str(index + 1) if has_more else None)

        start = int(token or 0)
        chunk = self.summaries[start : start + page_size]
        end = start + len(chunk)
        return ResourcePage(
            items=chunk, next_token=str(end) if end < len(self.summaries) else None
        )

    async def describe_one(self, resource_type, resource_id):
        self.describe_calls.append(resource_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.slow.get(resource_id, self.delay))
            if resource_id in self.failing:
                raise RuntimeError("ThrottlingException: rate exceeded")
            summary = self.by_id.get(resource_id)
            name = summary.name if summary else resource_id
            return ResourceDetail(
                id=resource_id,
                name=name,
                resource_type=resource_type,
                attributes={"ApproximateNumberOfMessages": "0"},
            )
        finally:
            self.in_flight -= 1

    async def list_children(self, parent_id, resource_type):
        if self.children_error is not None:
            raise self.children_error
        return list(self.children.get(parent_id, []))

    async def list_jump_host_candidates(self):
        self.candidate_calls += 1
        if self.candidates_gate is not None:
            await self.candidates_gate.wait()
        if self.candidates_error is not None:
            raise self.candidates_error
        return list(self.candidates)

    async def find_private_endpoint(self, network_id):
        self.endpoint_calls.append(network_id)
        if self.endpoint_error is not None:
            raise self.endpoint_error
        return self.endpoint

    async def open_session(self, target, jump_host=None, endpoint=None):
        self.session_calls.append((target, jump_host, endpoint))
        if self.session_delay:
            await asyncio.sleep(self.session_delay)
        if self.session_error is not None:
            raise self.session_error
        session = FakeSession(port=self.session_port)
        self.sessions.append(session)
        return session


@asynccontextmanager
async def _echo_server() -> AsyncIterator[int]:
    writers: set[asyncio.StreamWriter] = set()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.add(writer)
        try:
            while data := await reader.read(65536):
                writer.write(data)
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writers.discard(writer)
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    try:
        yield server.sockets[0].getsockname()[1]
    finally:
        server.close()
        for writer in list(writers):
            writer.close()
        await server.wait_closed()


async def _roundtrip(port: int, payload: bytes = b"ping") -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(payload)
        await writer.drain()
        return await asyncio.wait_for(reader.readexactly(len(payload)), timeout=5)
    finally:
        writer.close()
        with contextlib.suppress(ConnectionError):
            await writer.wait_closed()


@pytest.fixture
def make_service():
    """Factory for instrumented in-memory resource services."""
    return FakeResourceService


@pytest.fixture
def echo_server():
    """Async context manager yielding the port of a loopback echo server."""
    return _echo_server


@pytest.fixture
def roundtrip():
    """Coroutine sending a payload to a loopback port and reading the echo."""
    return _roundtrip


@pytest.fixture
def public_target():
    """Factory for public targets pointing at a loopback port."""

    def build(port: int = 9, name: str = "orders-api prod") -> TunnelTarget:
        return TunnelTarget(name=name, host="127.0.0.1", remote_port=port)

    return build


@pytest.fixture
def private_target():
    """Private API endpoint inside vpc-1."""
    return TunnelTarget(
        name="internal-api dev",
        host="abc123.execute-api.us-east-1.amazonaws.com",
        is_private=True,
        network_id="vpc-1",
        resource_id="abc123",
    )


@pytest.fixture
def bastion():
    return JumpHostCandidate(
        instance_id="i-bastion",
        name="bastion",
        tags={"Name": "bastion"},
        network_id="vpc-1",
    )


@pytest.fixture
def make_session():
    """Factory for loopback sessions that record teardown."""
    return FakeSession
