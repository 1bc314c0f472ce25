"""HTTP host for the Python dispatch shim."""

import importlib
import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import Response

from phantombridge.worker import DispatchResult
from phantombridge.worker import Dispatcher
from phantombridge.worker import PageFactory
from phantombridge.worker import build_dispatcher

log = logging.getLogger(__name__)

PORT_ENV_VAR: str = "PORT"
LISTEN_HOST: str = "127.0.0.1"


def build_app(dispatcher: Dispatcher) -> FastAPI:
    """Wrap a dispatcher in an ASGI application.

    Every method and path reaches the dispatcher; requests are handled one
    at a time on the event loop.

    :param dispatcher: Populated dispatcher.
    :returns: FastAPI application.
    """
    app: FastAPI = FastAPI(title="phantombridge-worker", docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
    async def dispatch(path: str, request: Request) -> Response:
        body: bytes = await request.body()
        result: DispatchResult = dispatcher.dispatch("/" + path, body)
        return Response(content=result.body, status_code=result.status, media_type=result.media_type)

    return app


def load_factory(target: str) -> PageFactory:
    """Import a page factory from a ``module.path:attribute`` target.

    :param target: Target string.
    :returns: Callable creating native pages.
    :raises ValueError: If the target format is invalid.
    :raises TypeError: If the target is not callable.
    """
    parts: list[str] = target.split(":")
    if len(parts) != 2:
        raise ValueError("Target must use module.path:attribute format")
    module_name: str = parts[0].strip()
    attr_path: str = parts[1].strip()
    if len(module_name) == 0 or len(attr_path) == 0:
        raise ValueError("Target module and attribute cannot be empty")

    current: object = importlib.import_module(module_name)
    for piece in attr_path.split("."):
        current = getattr(current, piece)
    if callable(current) is False:
        raise TypeError(f"{target} is not callable")
    return current  # type: ignore[return-value]


def read_port() -> int:
    """Read the listening port from the environment.

    :returns: Port number.
    :raises ValueError: If ``PORT`` is missing or not an integer.
    """
    raw: str | None = os.environ.get(PORT_ENV_VAR)
    if raw is None:
        raise ValueError(f"{PORT_ENV_VAR} environment variable is not set")
    return int(raw)


def serve(factory_target: str, port: int | None = None) -> None:
    """Run the worker HTTP server until the process is killed.

    :param factory_target: ``module.path:attribute`` of the native page factory.
    :param port: Listening port; read from ``PORT`` when omitted.
    """
    factory: PageFactory = load_factory(factory_target)
    if port is None:
        port = read_port()
    dispatcher: Dispatcher = build_dispatcher(factory)
    log.info("worker listening on %s:%d", LISTEN_HOST, port)
    uvicorn.run(build_app(dispatcher), host=LISTEN_HOST, port=port, log_level="warning")
