from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from iplocate.errors import IpProviderError
from iplocate.logger import logger

# Query field -> (code, message) reported when that field fails validation.
_FIELD_ERRORS: dict[str, tuple[str, str]] = {
    "ip": ("invalid_ip", "The supplied IP address is not a valid IPv4 or IPv6 address."),
    "hook": ("invalid_hook", "The supplied hook is not a known lookup context."),
}
_DEFAULT_FIELD_ERROR = ("invalid_request", "Invalid request parameters")


def _requested_provider(request: Request) -> str | None:
    """The `provider` query parameter of the request, None where the endpoint takes none."""
    return request.query_params.get("provider")


def _error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message, "provider": _requested_provider(request)},
    )


def _field_error(exc: ValidationError) -> tuple[str, str]:
    """Code and message of the first failing field we report on; raw pydantic details stay internal."""
    for error in exc.errors(include_url=False, include_context=False, include_input=False):
        loc = error.get("loc", ())
        if loc and loc[-1] in _FIELD_ERRORS:
            return _FIELD_ERRORS[loc[-1]]
    return _DEFAULT_FIELD_ERROR


async def pydantic_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Validation errors raised while building the query model of a request."""
    logger.info(
        f"Request validation failed path={request.url.path} method={request.method} "
        f"errors={exc.errors(include_url=False)}"
    )
    code, message = _field_error(exc)
    return _error_response(request, status.HTTP_400_BAD_REQUEST, code, message)


async def provider_exception_handler(request: Request, exc: IpProviderError) -> JSONResponse:
    """Provider errors that escaped the lookup endpoint's own mapping."""
    logger.error(f"IP provider error path={request.url.path} method={request.method} error={exc!r}")
    return _error_response(request, status.HTTP_502_BAD_GATEWAY, "upstream_error", str(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception path={request.url.path} method={request.method} error={exc!r}")
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_error",
        "An unexpected error occurred while processing the request.",
    )
