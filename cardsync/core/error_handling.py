import logging
from functools import wraps
from typing import Callable, Dict, Optional, ParamSpec, Type, TypeVar

from fastapi import HTTPException

from .exceptions.base import AppError, ResourceNotFoundError, ValidationError
from .exceptions.domain import (
    DuplicateUnresolvableError,
    FieldConfigMismatchError,
    RemoteUnreachableError,
    RemoteValidationError,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

ErrorMapping = Dict[Type[Exception], tuple[int, str]]

DEFAULT_ERROR_MAPPING: ErrorMapping = {
    ValidationError: (400, "Invalid input"),
    ResourceNotFoundError: (404, "Resource not found"),
    DuplicateUnresolvableError: (409, "Duplicate note could not be resolved"),
    FieldConfigMismatchError: (422, "Note type fields do not match the configuration"),
    RemoteValidationError: (502, "Note store rejected the request"),
    RemoteUnreachableError: (503, "Note store unreachable"),
    AppError: (500, "Internal application error"),
    ValueError: (400, "Invalid input"),
    Exception: (500, "Internal server error"),
}


def handle_exceptions(
    error_mapping: Optional[ErrorMapping] = None,
    log_level: int = logging.ERROR,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Exception handler for route functions with error mapping and logging

    Args:
        error_mapping: Custom mapping of exceptions to (status_code, message),
            checked before the defaults
        log_level: Logging level for errors

    Usage:
        @handle_exceptions({
            BlockNotFoundError: (404, "Block not found"),
        })
        async def my_route():
            ...
    """
    error_mapping = error_mapping or {}
    combined_mapping = {
        **error_mapping,
        **{exc_type: value for exc_type, value in DEFAULT_ERROR_MAPPING.items() if exc_type not in error_mapping},
    }

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                # Mapping order is significant: most specific types first
                for exc_type, (status_code, message) in combined_mapping.items():
                    if isinstance(e, exc_type):
                        log_data = {
                            "function_name": func.__name__,
                            "function_module": func.__module__,
                            "exception_type": type(e).__name__,
                        }

                        if isinstance(e, AppError):
                            log_data.update(
                                {
                                    "error_code": e.error_code,
                                    "details": e.details,
                                }
                            )
                            error_response = {
                                "message": message,
                                "error": e.message,
                                "error_code": e.error_code,
                                "details": e.details,
                            }
                        else:
                            error_response = {"message": message, "error": str(e)}

                        logger.log(log_level, str(e), extra=log_data)
                        raise HTTPException(status_code=status_code, detail=error_response)

                logger.exception("Unhandled exception in %s", func.__name__)
                raise HTTPException(status_code=500, detail={"message": "Internal server error"})

        return wrapper

    return decorator


def handle_service_errors(
    default_return_value: Optional[T] = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Error handler for service layer probes that should degrade to a default value

    Args:
        default_return_value: Value to return on error
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                log_data = {
                    "function_name": func.__name__,
                    "function_module": func.__module__,
                    "exception_type": type(e).__name__,
                }

                if isinstance(e, AppError):
                    log_data.update(
                        {
                            "error_code": e.error_code,
                            "details": e.details,
                        }
                    )

                logger.error(str(e), extra=log_data)
                return default_return_value

        return wrapper

    return decorator
