"""Database operation decorators for consistent error handling.

Each decorator wraps an async storage method so that any ``SQLAlchemyError``
surfaces as a :class:`DatabaseOperationError` tagged with the ids of the
entities involved. Ids are located by dotted paths into the call arguments
(``"feed_id"``, ``"video.id"``); the paths are checked against the
function's type hints when the decorator is applied, so a typo fails at
import time instead of while handling an error.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
import inspect
from types import NoneType, UnionType
from typing import Any, Union, cast, get_args, get_origin, get_type_hints

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import DatabaseOperationError


def _unwrap_optional(annotation: Any, path: str) -> Any:
    if get_origin(annotation) in (Union, UnionType):
        non_none = [arg for arg in get_args(annotation) if arg is not NoneType]
        if len(non_none) != 1:
            raise TypeError(f"Path '{path}' crosses an unsupported union: {annotation}")
        return non_none[0]
    return annotation


def _validate_id_path(
    func_name: str,
    sig: inspect.Signature,
    resolved_hints: dict[str, Any],
    path: str,
) -> None:
    """Check at decoration time that ``path`` leads to an ``int`` id.

    Args:
        func_name: The name of the function being decorated (for error messages).
        sig: The signature of the function.
        resolved_hints: The resolved type hints for the function.
        path: The dotted attribute path to validate (e.g., "video.id").

    Raises:
        TypeError: If a parameter or attribute is missing, unannotated, or the
            final attribute is not typed ``int`` or ``int | None``.
    """
    base_param_name, *attr_path = path.split(".")

    if base_param_name not in sig.parameters:
        raise TypeError(
            f"Decorator on '{func_name}' specifies path '{path}', "
            f"but the function has no parameter named '{base_param_name}'."
        )

    current_type = resolved_hints.get(base_param_name)
    for attr_name in attr_path:
        if current_type is None:
            raise TypeError(
                f"In path '{path}', '{attr_name}' is reached through an "
                f"unannotated value on '{func_name}'."
            )
        current_type = _unwrap_optional(current_type, path)
        try:
            owner_hints = get_type_hints(current_type)
        except (TypeError, NameError) as e:
            raise TypeError(
                f"In path '{path}', cannot resolve annotations of '{current_type}'."
            ) from e
        current_type = owner_hints.get(attr_name)

    if current_type is None or _unwrap_optional(current_type, path) is not int:
        raise TypeError(
            f"The final attribute in path '{path}' must be typed as 'int' or "
            f"'int | None', but found '{current_type}' in '{func_name}'."
        )


def _extract_value_from_path(
    bound_args: inspect.BoundArguments, path: str
) -> int | None:
    """Follow a dotted path through the bound call arguments.

    Returns:
        The id found at the end of the path, or None if any step is None.
    """
    base_param_name, *attr_path = path.split(".")
    current_value = bound_args.arguments.get(base_param_name)
    for attr in attr_path:
        if current_value is None:
            break
        current_value = getattr(current_value, attr, None)
    return cast(int | None, current_value)


def _base_db_error_handler[**P, T](
    operation: str,
    id_paths: dict[str, str] | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Build a decorator translating SQLAlchemy errors into DatabaseOperationError.

    Args:
        operation: Description of the operation for error messages.
        id_paths: Maps the keyword used on the raised error (e.g., "feed_id")
            to its extraction path (e.g., "feed.id").

    Returns:
        A decorator that wraps a coroutine function in SQLAlchemyError handling.
    """
    paths = id_paths or {}

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        try:
            sig = inspect.signature(func)
            resolved_hints = get_type_hints(func)
        except (TypeError, ValueError, NameError) as e:
            raise TypeError(
                f"Could not inspect the signature of {func.__name__}."
            ) from e

        for path in paths.values():
            _validate_id_path(func.__name__, sig, resolved_hints, path)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                extracted_ids: dict[str, int | None] = {}
                if paths:
                    bound_args = sig.bind(*args, **kwargs)
                    bound_args.apply_defaults()
                    for id_name, path in paths.items():
                        extracted_ids[id_name] = _extract_value_from_path(
                            bound_args, path
                        )
                raise DatabaseOperationError(
                    f"Failed to {operation}", **extracted_ids
                ) from e

        return wrapper

    return decorator


def handle_db_errors[**P, T](
    operation: str,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for database operations without a specific entity."""
    return _base_db_error_handler(operation=operation)


def handle_feed_db_errors[**P, T](
    operation: str,
    feed_id_from: str = "feed_id",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for database operations involving a feed."""
    return _base_db_error_handler(
        operation=operation, id_paths={"feed_id": feed_id_from}
    )


def handle_video_db_errors[**P, T](
    operation: str,
    video_id_from: str = "video_id",
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for database operations involving a single video."""
    return _base_db_error_handler(
        operation=operation, id_paths={"video_id": video_id_from}
    )
