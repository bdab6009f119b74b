"""
Dual-mode completion: callback or awaitable.

find_or_create reports its outcome through a single callback with the
signature ``callback(error, result, was_updated, is_new)``. When the caller
supplies one, it is used directly. Otherwise a Deferred is created and a
callback is synthesized that settles it, so the same orchestration code
serves both styles.
"""

import inspect
from collections.abc import Callable
from typing import Any

from .deferred import Deferred
from .models import FindOrCreateStatus

CompletionCallback = Callable[[BaseException | None, Any, bool, bool], Any]


def resolve_call_args(
    additional_fields: Any,
    context_options: Any,
    callback: CompletionCallback | None,
) -> tuple[Any, Any, CompletionCallback | None]:
    """Sort out which positional argument carries the callback.

    Supports ``(query, callback)``, ``(query, additional_fields, callback)``
    and ``(query, additional_fields, context_options, callback)``.
    """
    # (query, callback)
    if callable(additional_fields):
        return None, None, additional_fields

    # (query, additional_fields, callback)
    if callable(context_options):
        return additional_fields, None, context_options

    return additional_fields, context_options, callback


def build_completion(
    callback: CompletionCallback | None,
    status: bool = False,
) -> tuple[CompletionCallback, Deferred | None]:
    """Return the callback to report through, plus a Deferred if one was made.

    With a caller callback the Deferred is None. Without one, the returned
    callback rejects the Deferred on error and otherwise resolves it with
    the result, wrapped in FindOrCreateStatus when ``status`` is set.
    """
    if callback is not None:
        return callback, None

    deferred = Deferred()

    def complete(
        err: BaseException | None,
        result: Any,
        was_updated: bool,
        is_new: bool,
    ) -> None:
        if err is not None:
            deferred.reject(err)
            return

        if status:
            result = FindOrCreateStatus(
                result=result, was_updated=was_updated, is_new=is_new
            )
        deferred.resolve(result)

    return complete, deferred


async def invoke_callback(
    callback: CompletionCallback,
    err: BaseException | None,
    result: Any,
    was_updated: bool,
    is_new: bool,
) -> None:
    """Call the completion callback, awaiting it if it is a coroutine function."""
    outcome = callback(err, result, was_updated, is_new)
    if inspect.isawaitable(outcome):
        await outcome
