# sqlalchemy_polyint/naming.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Storage names of mapped classes.

The storage name of a class is the type name recorded for references to
its instances.  Leaves of an inheritance hierarchy report the name of the
hierarchy's base, which is the class that loads polymorphically::

    class Animal(Base):
        __tablename__ = "animals"
        id = mapped_column(Integer, primary_key=True)
        kind = mapped_column(String(20))
        __mapper_args__ = {"polymorphic_on": kind}

    class Dog(Animal):
        __mapper_args__ = {"polymorphic_identity": "dog"}

    storage_name_for(Dog()) == "Animal"

A class may declare its own storage name by providing a
``canonical_storage_name()`` callable; :class:`.StorageNameMixin`
provides one which reads ``__storage_name__`` from the hierarchy's base.

"""
from __future__ import annotations

from typing import Any
from typing import Type

from sqlalchemy import inspect

from . import exc


def _class_of(value: Any) -> Type[Any]:
    return value if isinstance(value, type) else type(value)


def _base_class(cls: Type[Any]) -> Type[Any]:
    mapper = inspect(cls, raiseerr=False)
    if mapper is None:
        return cls
    return mapper.base_mapper.class_


def storage_name_for(value: Any) -> str:
    """Return the name stored for references to ``value``, which may be
    a mapped instance or a mapped class."""

    cls = _class_of(value)
    hook = getattr(cls, "canonical_storage_name", None)
    if hook is not None and callable(hook):
        return hook()
    return _base_class(cls).__name__


class StorageNameMixin:
    """Mixin providing :meth:`.canonical_storage_name`.

    The storage name is the ``__storage_name__`` attribute of the
    hierarchy's base class when set, otherwise that class's name.
    Declaring ``__storage_name__`` keeps stored codes stable across
    class renames.

    """

    __storage_name__ = None

    @classmethod
    def canonical_storage_name(cls) -> str:
        base = _base_class(cls)
        return base.__storage_name__ or base.__name__


def class_for_storage_name(registry: Any, name: str) -> Type[Any]:
    """Locate the mapped class within ``registry`` that loads instances
    stored under ``name``.

    ``registry`` is a :class:`sqlalchemy.orm.registry`.  A class whose own
    name matches is preferred; otherwise the base of the hierarchy
    reporting ``name`` is used.

    """
    candidates = [
        mapper
        for mapper in registry.mappers
        if storage_name_for(mapper.class_) == name
    ]
    for mapper in candidates:
        if mapper.class_.__name__ == name:
            return mapper.class_
    for mapper in candidates:
        if mapper.inherits is None:
            return mapper.class_
    if candidates:
        return candidates[0].base_mapper.class_
    raise exc.UnknownTypeError(name, "mapped classes of %r" % (registry,))
