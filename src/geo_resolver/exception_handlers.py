from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from geo_resolver.logger import logger


def _lookup_context(request: Request) -> dict[str, str | None]:
    """Which IP was asked for and through which route template.

    The IP comes from `?ip=` on /v1/ip or from the path on /v1/ip/{ip}; the
    route is the matched template, so clients can tell the two apart.
    """
    route = request.scope.get("route")
    return {
        "ip": request.query_params.get("ip") or request.path_params.get("ip"),
        "route": getattr(route, "path", request.url.path),
    }


def _is_ip_error(error: dict[str, Any]) -> bool:
    loc = error.get("loc", ())
    # Request-level ("query", "ip") and model-level ("ip",) locations both end in "ip".
    return len(loc) >= 1 and loc[-1] == "ip"


async def pydantic_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Turn a rejected lookup address (or any other bad parameter) into a 400.

    Pydantic's internal error details are logged but never returned to clients.
    """
    context = _lookup_context(request)
    errors = exc.errors(include_url=False, include_context=False)
    logger.info(
        "Rejected lookup request "
        f"path={request.url.path} method={request.method} ip={context['ip']} route={context['route']} errors={errors}"
    )

    if any(_is_ip_error(error) for error in errors):
        payload = {
            "code": "invalid_ip",
            "message": "The supplied IP address is not a valid IPv4 or IPv6 address.",
        }
    else:
        payload = {"code": "invalid_request", "message": "Invalid request parameters"}

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={**payload, **context})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected errors to return a structured 500 response."""
    context = _lookup_context(request)
    logger.exception(
        f"Unhandled exception while processing request: {repr(exc)} "
        f"path={request.url.path} method={request.method} ip={context['ip']} route={context['route']}"
    )
    content: dict[str, Any] = {
        "code": "internal_error",
        "message": "An unexpected error occurred while resolving the request.",
        **context,
    }
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
    )
