"""
Error taxonomy for the storefront.

Service operations raise one of the StorefrontError kinds below. Anything
else that escapes an operation is logged and collapsed into InternalError
by the ``guarded`` decorator, so callers never see database internals.
"""

import functools
import logging

from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL_SERVER_ERROR"
    default_message = "Something went wrong"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def extensions(self):
        # Picked up by graphql-core when the error is located in a resolver
        return {"code": self.code}


class UnauthenticatedError(StorefrontError):
    code = "UNAUTHENTICATED"
    default_message = "You need to be logged in!"


class ForbiddenError(StorefrontError):
    code = "FORBIDDEN"
    default_message = "You are not authorized to perform this action"


class NotFoundError(StorefrontError):
    code = "NOT_FOUND"
    default_message = "Not found"


class UserInputError(StorefrontError):
    code = "BAD_USER_INPUT"
    default_message = "Invalid input"


class InsufficientStockError(UserInputError):
    code = "INSUFFICIENT_STOCK"
    default_message = "Insufficient stock"


class InternalError(StorefrontError):
    code = "INTERNAL_SERVER_ERROR"


def describe_validation_error(error: PydanticValidationError) -> str:
    """Render the first pydantic error as a short, user-facing sentence."""
    first = error.errors()[0]
    message = first.get("msg", "Invalid input")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {message}" if location else message


def guarded(failure_message: str):
    """
    Wrap a service operation with the storefront error policy.

    Storefront errors propagate unchanged, pydantic validation failures
    become UserInputError, and every other exception is logged with its
    traceback and replaced by InternalError(failure_message).

    Args:
        failure_message: Message exposed to the caller on unexpected failure
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except StorefrontError:
                raise
            except PydanticValidationError as e:
                raise UserInputError(describe_validation_error(e)) from e
            except Exception:
                logger.exception(f"{failure_message} ({func.__qualname__})")
                raise InternalError(failure_message) from None
        return wrapper
    return decorator
