"""Shared test fixtures and fake collaborators."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx


class FakeClock:
    """Manually advanced clock; sleeps are recorded and advance time."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds
        await asyncio.sleep(0)


class Recorder:
    """httpx MockTransport handler that replays scripted responses.

    ``routes`` maps a URL path to either a list of responses consumed in
    order (the last one repeats) or a callable taking the request.
    """

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []
        self.delay_ticks = 0

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for _ in range(self.delay_ticks):
            await asyncio.sleep(0)
        route = self.routes[request.url.path]
        if callable(route):
            result = route(request)
        else:
            index = min(len(self.calls(request.url.path)) - 1, len(route) - 1)
            result = route[index]
        if isinstance(result, Exception):
            raise result
        return result

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def json_response(data: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=data)


def text_response(text: str, status: int) -> httpx.Response:
    return httpx.Response(status, text=text)


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode())

