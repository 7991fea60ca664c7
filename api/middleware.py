import time
import logging
from fastapi import FastAPI, Request

logger = logging.getLogger("api.requests")


def register_request_logging(app: FastAPI):
    """
    Log one line per request, including requests that raised.

    Each line carries the remote address, the request URI, the response
    status, the latency in milliseconds and the client's user agent.

    Args:
        app (FastAPI): The FastAPI application instance to configure

    Returns:
        None
    """

    @app.middleware("http")
    async def log_request(request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"{_request_line(request, 500, start)} error={e!r}")
            raise
        logger.info(_request_line(request, response.status_code, start))
        return response


def _request_line(request: Request, status, start):
    latency_ms = (time.perf_counter() - start) * 1000
    uri = request.url.path
    if request.url.query:
        uri += f"?{request.url.query}"
    remote = request.client.host if request.client else "-"
    return (
        f"request remote={remote} URI={uri} status={status} "
        f"latency={latency_ms:.0f}ms agent={request.headers.get('user-agent', '-')}"
    )
