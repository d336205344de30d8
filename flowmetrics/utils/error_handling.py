"""
Failure Logging

Every failure in the engine ends in exactly one of three places:

- log_and_continue: one malformed work item row is skipped, the rest are parsed
- log_and_return_default: a degradable input (unknown timezone, unparseable
  date boundary) falls back to a documented default
- log_and_raise: a state provider or lookup service failed; the exception
  reaches the caller unchanged

All three attach the same structured fields so JSON log output can be
filtered by operation (error_type) and exception class.
"""

import logging
from typing import Any, NoReturn


def _failure_fields(error: Exception, context: dict[str, Any], error_type: str) -> dict[str, Any]:
    return {
        "error_type": error_type,
        "exception_class": type(error).__name__,
        "context": context,
    }


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Warn about a skipped input and let the caller carry on.

    Example:
        for row in rows:
            try:
                items.append(WorkItem.from_dict(row))
            except (KeyError, ValueError) as e:
                log_and_continue(logger, e, {"work_item_id": row.get("workItemId")}, "Work item parsing")
    """
    logger.warning(f"{error_type} failed: {error}", extra=_failure_fields(error, context, error_type))


def log_and_return_default(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    default_value: Any = None,
    error_type: str = "Operation",
) -> Any:
    """
    Warn about a degraded input and return the fallback.

    The fallback is logged as a string next to the failure context.

    Example:
        except ZoneInfoNotFoundError as e:
            return log_and_return_default(logger, e, {"timezone": name}, UTC, "Timezone validation")
    """
    fields = _failure_fields(error, context, error_type)
    fields["default_value"] = str(default_value)
    logger.warning(f"{error_type} failed, returning default value: {error}", extra=fields)
    return default_value


def log_and_raise(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> NoReturn:
    """
    Log an upstream failure with its traceback, then re-raise the same exception object.

    Args:
        logger: Module logger
        error: Exception caught from the provider call
        context: Request identifiers (org_id, fetch name, state category)
        error_type: Operation that failed, e.g. "Provider fetch"

    Raises:
        error, unchanged
    """
    logger.error(
        f"{error_type} failed critically: {error}",
        exc_info=True,
        extra=_failure_fields(error, context, error_type),
    )
    raise error
