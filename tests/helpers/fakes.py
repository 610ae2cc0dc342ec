"""In-process HTTP fakes for the storefront and carrier clients."""

from collections.abc import Callable
from typing import Any

import httpx

Handler = Callable[[httpx.Request], httpx.Response]


def json_response(status_code: int = 200, body: Any = None) -> Handler:
    """Handler returning a fresh JSON response on every call."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=body if body is not None else {})

    return handler


class FakeTransport:
    """Routes requests by method and path suffix, recording every request.

    A route maps to a handler or a list of handlers consumed in order;
    the last handler in a list answers all further calls.
    """

    def __init__(self, routes: dict[tuple[str, str], Handler | list[Handler]] | None = None):
        self.routes: dict[tuple[str, str], list[Handler]] = {}
        self.requests: list[httpx.Request] = []
        for key, handler in (routes or {}).items():
            self.add(key[0], key[1], handler)

    def add(self, method: str, path: str, handler: Handler | list[Handler]) -> None:
        self.routes[(method.upper(), path)] = list(handler) if isinstance(handler, list) else [handler]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, path), handlers in self.routes.items():
            if request.method == method and request.url.path.endswith(path):
                handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
                return handler(request)
        return httpx.Response(404, json={"message": f"No route for {request.url.path}"})

    def calls(self, path: str) -> list[httpx.Request]:
        """Requests whose path ends with ``path``."""
        return [r for r in self.requests if r.url.path.endswith(path)]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))
