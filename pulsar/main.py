import logging
import os
import sys
from http import HTTPStatus
from typing import BinaryIO

import uvicorn

from . import app as app_context
from .core.http import read_cgi_body, with_body
from .kernel import BaseKernel, Kernel


logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.WARNING) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )


def serve(kernel: BaseKernel, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Serve the kernel as an ASGI application."""
    configure_logging(logging.DEBUG if kernel.debug else logging.WARNING)
    uvicorn.run(kernel, host=host, port=port)


def run_cgi(kernel: BaseKernel, stdout: BinaryIO | None = None, stdin: BinaryIO | None = None) -> None:
    """Handle the request described by the CGI environment and write the response.

    The body is read from ``stdin`` (``CONTENT_LENGTH`` bytes) and the response
    is written as bytes, so binary bodies pass through untouched.
    """
    stdout = stdout or sys.stdout.buffer
    request = with_body(app_context.create_server_request(), read_cgi_body(stdin))
    response = kernel.handle(request)

    status = HTTPStatus(response.status_code)
    head = [f"Status: {status.value} {status.phrase}"]
    head += [f"{name}: {value}" for name, value in response.headers.items()]
    stdout.write(("\r\n".join(head) + "\r\n\r\n").encode("latin-1"))
    stdout.write(response.body)
    stdout.flush()


if __name__ == "__main__":
    kernel = Kernel(os.getenv("PULSAR_PROJECT_DIR", os.getcwd()))
    if os.getenv("GATEWAY_INTERFACE", "").startswith("CGI"):
        run_cgi(kernel)
    else:
        serve(kernel, port=int(os.getenv("PORT", "8080")))
