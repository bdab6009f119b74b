"""
Document classes wiring find_or_create onto Beanie models.

This module provides:
- FindOrCreateMixin: find_or_create / find_or_create_status classmethods
- FindOrCreateDocument: Beanie Document base with state management enabled
- find_or_create_plugin: class decorator for models that keep their own bases
"""

from collections.abc import Mapping
from typing import Any, ClassVar

from beanie import Document

from .config import OptionsLayer, merge_options
from .models import FindOrCreateStatus
from .orchestrator import find_or_create, find_or_create_status


def _find_or_create(
    cls,
    query: Mapping[str, Any],
    additional_fields: Any = None,
    context_options: Any = None,
    callback: Any = None,
):
    return find_or_create(cls, query, additional_fields, context_options, callback)


async def _find_or_create_status(
    cls,
    query: Mapping[str, Any],
    additional_fields: Mapping[str, Any] | None = None,
    options: OptionsLayer = None,
) -> FindOrCreateStatus:
    return await find_or_create_status(cls, query, additional_fields, options)


class FindOrCreateMixin:
    """Adds find_or_create to a document class.

    Model-level defaults go in ``find_or_create_options``; call-site options
    override them.
    """

    find_or_create_options: ClassVar[OptionsLayer] = None

    find_or_create = classmethod(_find_or_create)
    find_or_create_status = classmethod(_find_or_create_status)


class FindOrCreateDocument(FindOrCreateMixin, Document):
    """
    Base Beanie document with find_or_create.

    State management is on so unchanged documents are not re-saved.
    Subclasses defining their own Settings should inherit from
    ``FindOrCreateDocument.Settings`` to keep it.
    """

    class Settings:
        use_state_management = True


def find_or_create_plugin(model: type | None = None, /, **model_options: Any):
    """Attach find_or_create to an existing document class.

    Usage:
        @find_or_create_plugin
        class User(Document): ...

        @find_or_create_plugin(appendToArray=True, saveIfFound=True)
        class Profile(Document): ...
    """
    options = merge_options(model_options) if model_options else None

    def register(cls: type) -> type:
        cls.find_or_create_options = options
        cls.find_or_create = classmethod(_find_or_create)
        cls.find_or_create_status = classmethod(_find_or_create_status)
        return cls

    if model is not None:
        return register(model)
    return register
