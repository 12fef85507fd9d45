"""Request id, client address, timing and access logging."""
import logging
import time
import uuid

from starlette.requests import Request
from starlette.responses import Response

from .base import TollgateMiddleware

logger = logging.getLogger("tollgate.access")


class RequestContextMiddleware(TollgateMiddleware):
    """
    Outermost interceptor.

    Pre: sets ``request.state.request_id``, ``start_time`` and ``client_ip``.
    Post: adds ``X-Request-ID`` and ``X-Process-Time`` and logs the request.
    """

    def setup(self):
        self.time_header = self.config.get("time_header", "X-Process-Time")
        self.excluded_paths = set(self.config.get("excluded_paths", ["/health"]))

    async def before_request(self, request: Request):
        request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.start_time = time.perf_counter()
        self.client_ip(request)
        return None

    async def after_response(self, request: Request, response: Response) -> Response:
        process_time = time.perf_counter() - request.state.start_time
        response.headers["X-Request-ID"] = request.state.request_id
        response.headers[self.time_header] = f"{process_time:.4f}"
        if request.url.path not in self.excluded_paths:
            logger.info(
                f"{request.method} {request.url.path} {response.status_code} "
                f"{process_time * 1000:.1f}ms ip={request.state.client_ip} id={request.state.request_id}"
            )
        return response
