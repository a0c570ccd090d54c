"""tracking3 executor - builds, sends and classifies API requests."""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, BinaryIO, Protocol

import requests

from tracking3.core import SELF_VERSION, Configuration, build_headers, render_header_lines
from tracking3.errors import RequestConnectionError, RequestTimeoutError
from tracking3.multipart import (
    encode_multipart,
    generate_boundary,
    multipart_content_type,
    sniff_mime_type,
)

logger = logging.getLogger(__name__)

OPTION_METHOD = "method"
OPTION_HEADERS = "headers"
OPTION_TIMEOUT = "timeout"
OPTION_URL = "url"
OPTION_BODY = "body"

# Transport error codes (libcurl numbering)
ERROR_NONE = 0
ERROR_URL_MALFORMAT = 3
ERROR_COULDNT_CONNECT = 7
ERROR_OPERATION_TIMEDOUT = 28
ERROR_SSL_CONNECT = 35
ERROR_RECV = 56

TIMEOUT_ERROR_CODE = 1592833821

# The API prefixes every response body with a 6 character preamble.
# It is stripped unconditionally, whatever X-Strip-Leading-Brackets says.
RESPONSE_PREAMBLE_LENGTH = 6


@dataclass
class Response:
    """A completed HTTP exchange, whatever its status code."""

    status: int
    body: str


class Transport(Protocol):
    """One synchronous HTTP session. Not safe for concurrent use."""

    def set_option(self, option: str, value: Any) -> None: ...

    def execute(self) -> str: ...

    def get_status_code(self) -> int: ...

    def get_error_code(self) -> int: ...

    def get_error(self) -> str: ...

    def close(self) -> None: ...


class RequestsTransport:
    """Transport backed by a requests.Session.

    Never raises from execute(): failures are reported through
    get_error_code() / get_error(), with the status code left at 0.

    The timeout applies to the connect and to each read separately, so a
    server trickling bytes can keep execute() running past it.
    """

    def __init__(self, session: requests.Session | None = None):
        self._session = session or requests.Session()
        self._options: dict[str, Any] = {}
        self._status_code = 0
        self._error_code = ERROR_NONE
        self._error = ""

    def set_option(self, option: str, value: Any) -> None:
        self._options[option] = value

    def execute(self) -> str:
        self._status_code = 0
        self._error_code = ERROR_NONE
        self._error = ""

        try:
            resp = self._session.request(
                method=self._options.get(OPTION_METHOD, "GET"),
                url=self._options.get(OPTION_URL, ""),
                headers=_parse_header_lines(self._options.get(OPTION_HEADERS) or []),
                data=_encode_body(self._options.get(OPTION_BODY)),
                timeout=self._options.get(OPTION_TIMEOUT),
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            return self._fail(ERROR_OPERATION_TIMEDOUT, e)
        except requests.exceptions.SSLError as e:
            return self._fail(ERROR_SSL_CONNECT, e)
        except requests.exceptions.ConnectionError as e:
            return self._fail(ERROR_COULDNT_CONNECT, e)
        except (
            requests.exceptions.InvalidURL,
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
        ) as e:
            return self._fail(ERROR_URL_MALFORMAT, e)
        except requests.exceptions.RequestException as e:
            return self._fail(ERROR_RECV, e)

        self._status_code = resp.status_code
        return resp.text

    def _fail(self, code: int, exc: Exception) -> str:
        self._error_code = code
        self._error = str(exc)
        return ""

    def get_status_code(self) -> int:
        return self._status_code

    def get_error_code(self) -> int:
        return self._error_code

    def get_error(self) -> str:
        return self._error

    def close(self) -> None:
        self._session.close()


def _parse_header_lines(lines: list[str]) -> dict[str, str]:
    """Parse 'Name: value' lines back into a dict."""
    headers = {}
    for line in lines:
        if ":" in line:
            k, v = line.split(":", 1)
            headers[k.strip()] = v.strip()
    return headers


def _encode_body(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def classify_outcome(
    raw: str,
    status: int,
    error_code: int,
    error: str,
    timeout: int,
) -> Response:
    """Turn a transport outcome into a Response or a typed error.

    - timeout code with no HTTP status -> RequestTimeoutError
    - any other transport error code -> RequestConnectionError
    - otherwise a Response, with the response preamble stripped

    HTTP error statuses are not errors here.
    """
    if error_code == ERROR_OPERATION_TIMEDOUT and status == 0:
        raise RequestTimeoutError(
            f"Request exceeded timeout of {timeout}",
            TIMEOUT_ERROR_CODE,
        )
    if error_code:
        raise RequestConnectionError(error, error_code)
    return Response(status=status, body=(raw or "")[RESPONSE_PREAMBLE_LENGTH:])


class RequestHandler:
    """Sends authenticated requests to the Tracking3 API.

    Usage:
        handler = RequestHandler()
        response = handler.do_request("GET", uri, configuration)

    Every call gets its own transport from ``transport_factory``, closed once
    the call completes, so a handler can be reused for sequential calls.
    """

    def __init__(
        self,
        transport_factory: Callable[[], Transport] = RequestsTransport,
        client_version: str = SELF_VERSION,
        boundary_factory: Callable[[], str] = generate_boundary,
        mime_sniffer: Callable[[bytes], str] = sniff_mime_type,
    ) -> None:
        self._transport_factory = transport_factory
        self._client_version = client_version
        self._boundary_factory = boundary_factory
        self._mime_sniffer = mime_sniffer

    def do_request(
        self,
        method: str,
        uri: str,
        configuration: Configuration,
        body: Mapping | None = None,
        file: BinaryIO | None = None,
        custom_headers: dict[str, str] | None = None,
    ) -> Response:
        """Build and send one request.

        With a file, the body is sent as multipart/form-data (body entries
        become form fields). Without one, a non-empty body is handed to the
        transport as-is. Raises RequestTimeoutError or RequestConnectionError.
        """
        headers = build_headers(configuration, custom_headers, self._client_version)

        payload: Any = None
        if file is not None:
            boundary = self._boundary_factory()
            # requests folds header names, so any spelling of Content-Type would compete
            headers = {k: v for k, v in headers.items() if k.lower() != "content-type"}
            headers["Content-Type"] = multipart_content_type(boundary)
            payload = encode_multipart(body, file, boundary, sniff=self._mime_sniffer)
        elif body:
            payload = body

        return self.execute(method, uri, headers, payload, configuration.timeout)

    def execute(
        self,
        method: str,
        uri: str,
        headers: dict[str, str],
        body: Any,
        timeout: int,
    ) -> Response:
        """Send a prepared request through a fresh transport and classify it."""
        transport = self._transport_factory()
        try:
            transport.set_option(OPTION_METHOD, method)
            transport.set_option(OPTION_HEADERS, render_header_lines(headers))
            transport.set_option(OPTION_TIMEOUT, timeout)
            transport.set_option(OPTION_URL, uri)
            if body is not None:
                transport.set_option(OPTION_BODY, body)

            logger.debug("Sending %s %s (timeout %ss)", method, uri, timeout)
            raw = transport.execute()
            status = transport.get_status_code()
            error_code = transport.get_error_code()
            error = transport.get_error()
        finally:
            transport.close()

        if error_code:
            logger.warning("%s %s failed: [%s] %s", method, uri, error_code, error)
        else:
            logger.debug("%s %s -> %s", method, uri, status)
        return classify_outcome(raw, status, error_code, error, timeout)
