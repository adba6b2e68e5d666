import logging
import os
import sys
from typing import Any, BinaryIO, Dict, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response


logger = logging.getLogger(__name__)


class ResponseFactory:
    def create_response(
        self,
        status_code: int = 200,
        content: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = None,
    ) -> Response:
        return Response(content=content, status_code=status_code, headers=headers, media_type=media_type)

    def create_json_response(
        self,
        content: Any,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ) -> JSONResponse:
        return JSONResponse(content=content, status_code=status_code, headers=headers)

    def create_text_response(self, content: str | bytes, status_code: int = 200) -> PlainTextResponse:
        return PlainTextResponse(content=content, status_code=status_code)


def build_request(
    method: str = "GET",
    path: str = "/",
    headers: Optional[Mapping[str, str]] = None,
    query_string: str = "",
    server: Optional[tuple] = None,
    scheme: str = "http",
    body: bytes = b"",
) -> Request:
    """Build a server request without a running ASGI server."""
    scope: Dict[str, Any] = {
        "type": "http",
        "http_version": "1.1",
        "method": method.upper(),
        "scheme": scheme,
        "path": path,
        "raw_path": path.encode("latin-1"),
        "root_path": "",
        "query_string": query_string.encode("latin-1"),
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
        "server": server,
    }
    return with_body(Request(scope), body)


def with_body(request: Request, body: bytes) -> Request:
    """Return a request over the same scope whose body has already been read.

    The synchronous request chain reads the body from ``request.state.body``;
    ``await request.body()`` keeps working for handlers that prefer it.
    """
    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    request = Request(request.scope, receive)
    request.state.body = body
    return request


def read_cgi_body(stream: Optional[BinaryIO] = None, environ: Optional[Mapping[str, str]] = None) -> bytes:
    """Read ``CONTENT_LENGTH`` bytes of request body from the CGI input stream."""
    environ = os.environ if environ is None else environ
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        logger.warning(f"Ignoring invalid CONTENT_LENGTH: {environ.get('CONTENT_LENGTH')!r}")
        return b""
    if length <= 0:
        return b""
    stream = stream if stream is not None else sys.stdin.buffer
    return stream.read(length)


def request_from_environ(environ: Optional[Mapping[str, str]] = None) -> Request:
    """Build the current request from CGI variables (``REQUEST_METHOD``, ``PATH_INFO``, ``HTTP_*``...)."""
    environ = os.environ if environ is None else environ

    headers: Dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-").lower()] = value
    for key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        if environ.get(key):
            headers[key.replace("_", "-").lower()] = environ[key]

    server = None
    if environ.get("SERVER_NAME"):
        server = (environ["SERVER_NAME"], int(environ.get("SERVER_PORT") or 80))

    return build_request(
        method=environ.get("REQUEST_METHOD", "GET"),
        path=environ.get("PATH_INFO") or "/",
        headers=headers,
        query_string=environ.get("QUERY_STRING", ""),
        server=server,
        scheme="https" if environ.get("HTTPS", "").lower() in ("on", "1") else "http",
    )


def to_response(result: Any, response_factory: ResponseFactory) -> Response:
    """Convert what a route handler returned into a response."""
    if isinstance(result, Response):
        return result
    if isinstance(result, (str, bytes)):
        return response_factory.create_text_response(result)
    return response_factory.create_json_response(result)
