"""Per-request access log and request-id correlation.

An inbound X-Request-ID (from a load balancer or the caller) is kept when it
looks sane; otherwise a fresh `req_...` id is minted. Either way it lands on
`request.state.request_id`, in the response envelope and on the response header.

    INFO  POST /api/v1/listings/123/bids 201 12ms req_a1b2c3d4e5f6
    WARN  POST /api/v1/checkout 500 80ms req_...
"""

import logging
import re
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.mk_common.response import new_request_id

logger = logging.getLogger("mk.http")

REQUEST_ID_HEADER = "X-Request-ID"
_ACCEPTABLE_ID = re.compile(r"^[A-Za-z0-9_.:-]{8,64}$")


def _inbound_request_id(request: Request) -> str | None:
    candidate = request.headers.get(REQUEST_ID_HEADER)
    if candidate and _ACCEPTABLE_ID.match(candidate):
        return candidate
    return None


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _inbound_request_id(request) or new_request_id()
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        took_ms = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s %d %.0fms %s",
            request.method,
            request.url.path,
            response.status_code,
            took_ms,
            request_id,
        )
        return response
