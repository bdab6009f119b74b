"""
Find-merge-save orchestration.

run_find_or_create() is the core: look the document up with the raw query,
create it from the sanitized query if missing, merge additional fields and
save only when something changed. find_or_create() wraps it with the
dual callback/awaitable completion.

This is a read followed by a write, not an atomic upsert: two concurrent
calls with the same query can both miss and both create.
"""

import asyncio
import functools
import logging
from collections.abc import Mapping, MutableMapping
from types import UnionType
from typing import Any, Protocol, Union, get_args, get_origin

import logfire
from beanie.exceptions import StateManagementIsTurnedOff, StateNotSaved
from pydantic import TypeAdapter, ValidationError

from .completion import (
    CompletionCallback,
    build_completion,
    invoke_callback,
    resolve_call_args,
)
from .config import FindOrCreateOptions, OptionsLayer, get_settings, merge_options
from .deferred import Deferred
from .exceptions import InvalidFieldError, InvalidOptionsError
from .models import FindOrCreateStatus
from .sanitize import sanitize_query

logger = logging.getLogger(__name__)

# Callback-mode tasks, held until done so they are not garbage collected
_background_tasks: set[asyncio.Task] = set()


class SupportsFindOrCreate(Protocol):
    """What a document instance must provide (Beanie documents do)."""

    @property
    def is_changed(self) -> bool: ...

    async def save(self, **kwargs: Any) -> Any: ...


def _model_name(model: Any) -> str:
    return getattr(model, "__name__", type(model).__name__)


def resolve_options(model: Any, context_options: OptionsLayer = None) -> FindOrCreateOptions:
    """Merge settings defaults, model-level options and call-site options."""
    return merge_options(
        get_settings().defaults,
        getattr(model, "find_or_create_options", None),
        context_options,
    )


def is_modified(doc: SupportsFindOrCreate) -> bool:
    """Report whether the document has unsaved changes.

    Documents without state management, or that were never saved with it,
    cannot tell, so they count as modified.
    """
    try:
        return bool(doc.is_changed)
    except (StateManagementIsTurnedOff, StateNotSaved):
        logger.debug(f"No saved state for {type(doc).__name__}, assuming modified")
        return True


def _split_path(field: Any) -> list[Any]:
    return field.split(".") if isinstance(field, str) else [field]


def expand_dotted(values: Mapping[str, Any]) -> dict[str, Any]:
    """Turn dotted keys into nested dicts: ``{"a.b": 1}`` -> ``{"a": {"b": 1}}``.

    Keys sharing a prefix merge into one nested dict. Caller mappings are
    copied before anything is added to them.
    """
    expanded: dict[str, Any] = {}
    owned = {id(expanded)}

    for key, value in values.items():
        *parents, leaf = _split_path(key)
        target = expanded
        for part in parents:
            child = target.get(part)
            if not (isinstance(child, dict) and id(child) in owned):
                child = dict(child) if isinstance(child, Mapping) else {}
                owned.add(id(child))
                target[part] = child
            target = child
        target[leaf] = value

    return expanded


def _get(container: Any, name: Any) -> Any:
    if isinstance(container, Mapping):
        return container.get(name)
    return getattr(container, name, None)


def _set(container: Any, name: Any, value: Any) -> None:
    if isinstance(container, MutableMapping):
        container[name] = value
    else:
        setattr(container, name, value)


def resolve_path(doc: Any, field: Any) -> tuple[Any, Any]:
    """Return the container holding ``field`` and the last path segment.

    Raises:
        InvalidFieldError: An intermediate segment is missing or None
    """
    *parents, leaf = _split_path(field)
    container = doc
    for depth, part in enumerate(parents, start=1):
        container = _get(container, part)
        if container is None:
            prefix = ".".join(parents[:depth])
            raise InvalidFieldError(
                f"Cannot set '{field}': '{prefix}' is not set", field=field
            )
    return container, leaf


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _field_annotation(model: Any, field: Any) -> Any:
    """Walk a (possibly dotted) field path through nested model annotations."""
    owner = model
    annotation = None
    for part in _split_path(field):
        owner = _unwrap_optional(owner)
        if get_origin(owner) in (dict, Mapping, MutableMapping):
            # Values of a dict field, keyed by the path segment
            annotation = get_args(owner)[1] if get_args(owner) else Any
        else:
            model_fields = getattr(owner, "model_fields", None)
            field_info = (
                model_fields.get(part) if isinstance(model_fields, dict) else None
            )
            if field_info is None:
                raise InvalidFieldError(
                    f"{_model_name(model)} has no field '{field}'", field=field
                )
            annotation = field_info.annotation
        owner = annotation
    return annotation


def validate_field(model: Any, field: str, value: Any) -> Any:
    """Validate a value against the model's annotation for ``field``."""
    if getattr(model, "model_fields", None) is None:
        raise InvalidOptionsError(
            f"validate_fields requires a pydantic document model, got {_model_name(model)}"
        )

    annotation = _field_annotation(model, field)

    try:
        return TypeAdapter(annotation).validate_python(value)
    except ValidationError as e:
        raise InvalidFieldError(
            f"Invalid value for {_model_name(model)}.{field}: {e}", field=field
        ) from e


def merge_fields(
    doc: Any,
    additional_fields: Mapping[str, Any],
    options: FindOrCreateOptions,
) -> None:
    """Assign additional fields onto the document in place.

    Dotted keys address nested fields. With ``append_to_array`` an existing
    list field is extended instead of replaced; a non-list value is appended
    as a single element. Every value is resolved and validated before any is
    assigned, so a rejected field leaves the document untouched.
    """
    pending = []
    for field, value in additional_fields.items():
        container, name = resolve_path(doc, field)
        current = _get(container, name)

        if isinstance(current, list) and options.append_to_array:
            extra = list(value) if isinstance(value, (list, tuple)) else [value]
            value = current + extra

        if options.validate_fields:
            value = validate_field(type(doc), field, value)

        pending.append((container, name, value))

    for container, name, value in pending:
        _set(container, name, value)


def new_document(model: Any, query: Any) -> Any:
    """Construct an unsaved document seeded from the sanitized query."""
    seed = sanitize_query(query)
    if isinstance(seed, Mapping):
        return model(**expand_dotted(seed))
    return model()


async def run_find_or_create(
    model: Any,
    query: Mapping[str, Any],
    additional_fields: Mapping[str, Any] | None = None,
    options: FindOrCreateOptions | None = None,
) -> FindOrCreateStatus:
    """Find a document by ``query``, creating or updating it as needed.

    Args:
        model: Document class exposing ``find_one`` and keyword construction
        query: Raw query, also the seed (once sanitized) for a new document
        additional_fields: Fields to merge into the found or new document
        options: Fully merged options

    Returns:
        FindOrCreateStatus with the document, whether it was written and
        whether it was newly created

    Raises:
        Whatever the store raises from find_one, construction or save,
        unchanged. InvalidFieldError when validate_fields rejects a value.
    """
    options = options or FindOrCreateOptions()
    name = _model_name(model)

    with logfire.span("find_or_create", model=name):
        try:
            result = await model.find_one(query)
        except Exception as e:
            logfire.error(
                "find_or_create query failed",
                model=name,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        if result is not None and additional_fields is None:
            logger.debug(f"Found existing {name}, no fields to merge")
            return FindOrCreateStatus(result=result)

        creating = result is None
        doc = new_document(model, query) if creating else result

        if not creating and not options.save_if_found:
            logger.debug(f"Found existing {name}, save_if_found is off")
            return FindOrCreateStatus(result=doc)

        if additional_fields is not None:
            merge_fields(doc, additional_fields, options)

        if not creating and not is_modified(doc):
            logger.debug(f"Existing {name} unchanged after merge, skipping save")
            return FindOrCreateStatus(result=doc, is_new=creating)

        try:
            await doc.save(**options.save_options)
        except Exception as e:
            logfire.error(
                "find_or_create save failed",
                model=name,
                creating=creating,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        logger.debug(f"Saved {'new' if creating else 'updated'} {name}")
        return FindOrCreateStatus(result=doc, was_updated=True, is_new=creating)


async def _run_and_complete(
    model: Any,
    query: Mapping[str, Any],
    additional_fields: Mapping[str, Any] | None,
    options: FindOrCreateOptions,
    callback: CompletionCallback,
) -> None:
    try:
        status = await run_find_or_create(model, query, additional_fields, options)
    except Exception as e:
        await invoke_callback(callback, e, None, False, False)
        return

    await invoke_callback(
        callback, None, status.result, status.was_updated, status.is_new
    )


def _on_task_done(deferred: Deferred | None, task: asyncio.Task) -> None:
    _background_tasks.discard(task)

    if task.cancelled():
        if deferred is not None:
            deferred.promise.cancel()
        return

    # Only the caller's own callback can raise here
    exc = task.exception()
    if exc is not None:
        logger.error("find_or_create completion callback raised", exc_info=exc)


def find_or_create(
    model: Any,
    query: Mapping[str, Any],
    additional_fields: Any = None,
    context_options: Any = None,
    callback: CompletionCallback | None = None,
) -> asyncio.Future | None:
    """Find a document matching ``query``, or create/update it.

    Call shapes::

        await find_or_create(User, query)
        await find_or_create(User, query, fields, {"saveIfFound": True})
        find_or_create(User, query, callback)
        find_or_create(User, query, fields, callback)
        find_or_create(User, query, fields, options, callback)

    Must be called with an event loop running. Without a callback, returns a
    future resolving to the document (or FindOrCreateStatus when the
    ``status`` option is on) and rejected with the underlying error. With a
    callback, returns None and reports ``callback(error, result,
    was_updated, is_new)`` exactly once.

    Option errors (InvalidOptionsError, bad settings) are reported through
    the same channel as store errors.
    """
    loop = asyncio.get_running_loop()
    additional_fields, context_options, callback = resolve_call_args(
        additional_fields, context_options, callback
    )

    try:
        options = resolve_options(model, context_options)
    except Exception as e:
        logger.warning(f"find_or_create options rejected for {_model_name(model)}: {e}")
        callback, deferred = build_completion(callback)
        work = invoke_callback(callback, e, None, False, False)
    else:
        callback, deferred = build_completion(callback, options.status)
        work = _run_and_complete(model, query, additional_fields, options, callback)

    task = loop.create_task(work)
    _background_tasks.add(task)
    task.add_done_callback(functools.partial(_on_task_done, deferred))

    return deferred.promise if deferred is not None else None


async def find_or_create_status(
    model: Any,
    query: Mapping[str, Any],
    additional_fields: Mapping[str, Any] | None = None,
    options: OptionsLayer = None,
) -> FindOrCreateStatus:
    """Explicit coroutine form: always returns FindOrCreateStatus, raises on failure."""
    merged = resolve_options(model, options)
    return await run_find_or_create(model, query, additional_fields, merged)
