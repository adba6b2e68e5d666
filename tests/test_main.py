import asyncio
import io

from starlette.testclient import TestClient

from pulsar import Kernel
from pulsar.core.http import build_request, read_cgi_body, request_from_environ
from pulsar.main import run_cgi


ROUTES = [
    {"name": "ping", "path": "/ping", "handler": "tests.handlers:ping"},
    {"name": "user", "path": "/users/{id:int}", "handler": "tests.handlers:show_user", "methods": ["GET", "POST"]},
    {"name": "echo", "path": "/echo", "handler": "tests.handlers:echo", "methods": ["POST"]},
    {"name": "download", "path": "/download", "handler": "tests.handlers:download"},
]


def test_request_from_cgi_environ():
    request = request_from_environ({
        "REQUEST_METHOD": "POST",
        "PATH_INFO": "/users/3",
        "QUERY_STRING": "page=2",
        "HTTP_X_REQUEST_ID": "abc",
        "CONTENT_TYPE": "application/json",
        "SERVER_NAME": "example.test",
        "SERVER_PORT": "443",
        "HTTPS": "on",
    })

    assert request.method == "POST"
    assert request.url.path == "/users/3"
    assert request.query_params["page"] == "2"
    assert request.headers["x-request-id"] == "abc"
    assert request.headers["content-type"] == "application/json"
    assert str(request.url) == "https://example.test/users/3?page=2"


def test_run_cgi_writes_status_headers_and_body(make_project, monkeypatch):
    kernel = Kernel(make_project(routes=ROUTES))
    monkeypatch.setenv("REQUEST_METHOD", "GET")
    monkeypatch.setenv("PATH_INFO", "/ping")
    stdout = io.BytesIO()

    run_cgi(kernel, stdout)

    output = stdout.getvalue()
    assert output.startswith(b"Status: 200 OK\r\n")
    assert b"content-type: application/json\r\n" in output
    assert output.endswith(b'\r\n\r\n{"pong":true}')


def test_run_cgi_renders_errors(make_project, monkeypatch):
    kernel = Kernel(make_project(routes=ROUTES))
    monkeypatch.setenv("REQUEST_METHOD", "GET")
    monkeypatch.setenv("PATH_INFO", "/nowhere")
    stdout = io.BytesIO()

    run_cgi(kernel, stdout)

    assert stdout.getvalue().startswith(b"Status: 404 Not Found\r\n")


def test_run_cgi_reads_request_body_from_stdin(make_project, monkeypatch):
    kernel = Kernel(make_project(routes=ROUTES))
    monkeypatch.setenv("REQUEST_METHOD", "POST")
    monkeypatch.setenv("PATH_INFO", "/echo")
    monkeypatch.setenv("CONTENT_TYPE", "text/plain")
    monkeypatch.setenv("CONTENT_LENGTH", "5")
    stdout = io.BytesIO()

    run_cgi(kernel, stdout, stdin=io.BytesIO(b"hello, and more"))

    output = stdout.getvalue()
    assert output.startswith(b"Status: 200 OK\r\n")
    assert output.endswith(b"\r\n\r\nhello")


def test_run_cgi_writes_binary_bodies_untouched(make_project, monkeypatch):
    kernel = Kernel(make_project(routes=ROUTES))
    monkeypatch.setenv("REQUEST_METHOD", "GET")
    monkeypatch.setenv("PATH_INFO", "/download")
    stdout = io.BytesIO()

    run_cgi(kernel, stdout)

    output = stdout.getvalue()
    assert b"content-type: application/octet-stream\r\n" in output
    assert output.endswith(b"\r\n\r\n\xff\x00\xfe")


def test_cgi_body_is_empty_without_content_length():
    stdin = io.BytesIO(b"ignored")

    assert read_cgi_body(stdin, {"REQUEST_METHOD": "POST"}) == b""
    assert read_cgi_body(stdin, {"CONTENT_LENGTH": "nope"}) == b""
    assert stdin.tell() == 0


def test_prepared_body_is_readable_asynchronously():
    request = build_request("POST", "/echo", body=b'{"name": "ada"}')

    assert request.state.body == b'{"name": "ada"}'
    assert asyncio.run(request.json()) == {"name": "ada"}


def test_kernel_is_an_asgi_application(make_project):
    kernel = Kernel(make_project(routes=ROUTES))

    with TestClient(kernel) as client:
        assert client.get("/ping").json() == {"pong": True}
        assert client.post("/users/9", json={"name": "x"}).json() == {"id": 9}
        assert client.post("/echo", content=b"raw bytes").text == "raw bytes"
        assert client.get("/missing").status_code == 404
        assert client.delete("/ping").status_code == 405
