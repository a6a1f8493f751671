# sqlalchemy_polyint/descriptor.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Describes one declared polymorphic association.

An :class:`.AssociationDescriptor` names the two columns backing a
polymorphic reference, the :class:`.PolymorphicTypeCode` that selects its
registry, and which side of the association it describes.  It converts
between related objects and ``(id, code)`` pairs; it performs no I/O.

"""
from __future__ import annotations

import enum
from typing import Any
from typing import Dict
from typing import Optional
from typing import Tuple
from typing import Type

from sqlalchemy import and_
from sqlalchemy import exc as sa_exc
from sqlalchemy import inspect
from sqlalchemy.sql.elements import ColumnElement

from . import exc
from .naming import class_for_storage_name
from .naming import storage_name_for
from .registry import TypeRegistry
from .types import PolymorphicTypeCode


class ReferenceDirection(enum.Enum):
    """Which side of a polymorphic association is described."""

    MANYTOONE = 1
    """The referencing side, holding the id and type columns."""

    ONETOMANY = 2
    """The inverse side, a collection of referencing objects."""


class AssociationDescriptor:
    """Static configuration of one polymorphic association.

    :param owner: the mapped class holding the id and type columns.
    :param key: name of the reference on ``owner``.
    :param id_attr: attribute name of the id column.
    :param type_attr: attribute name of the type-code column.
    :param type_code: the :class:`.PolymorphicTypeCode` of the type column.
    :param direction: a :class:`.ReferenceDirection`.
    :param parent: the class declaring the association; ``owner`` for the
      referencing side, the referenced class for the inverse side.
    :param parent_key: name of the association on ``parent``.

    """

    def __init__(
        self,
        owner: Type[Any],
        key: str,
        id_attr: str,
        type_attr: str,
        type_code: PolymorphicTypeCode,
        direction: ReferenceDirection = ReferenceDirection.MANYTOONE,
        parent: Optional[Type[Any]] = None,
        parent_key: Optional[str] = None,
    ):
        self._owner = owner
        self._key = key
        self._id_attr = id_attr
        self._type_attr = type_attr
        self._type_code = type_code
        self._direction = direction
        self._parent = parent if parent is not None else owner
        self._parent_key = parent_key if parent_key is not None else key
        self._classes: Dict[str, Type[Any]] = {}

    @classmethod
    def for_mapped_class(
        cls, owner: Type[Any], key: str, id_attr: str, type_attr: str
    ) -> AssociationDescriptor:
        """Build the referencing-side descriptor from ``owner``'s mapping."""

        mapper = inspect(owner)
        for attr in (id_attr, type_attr):
            if not mapper.has_property(attr):
                raise sa_exc.ArgumentError(
                    "Polymorphic reference %s.%s requires a mapped column "
                    "attribute %r" % (owner.__name__, key, attr)
                )
        type_ = mapper.get_property(type_attr).columns[0].type
        if not isinstance(type_, PolymorphicTypeCode):
            raise sa_exc.ArgumentError(
                "Column %s.%s of polymorphic reference %r must be of type "
                "PolymorphicTypeCode, not %r"
                % (owner.__name__, type_attr, key, type_)
            )
        return cls(owner, key, id_attr, type_attr, type_)

    def inverse(
        self, parent: Type[Any], parent_key: str
    ) -> AssociationDescriptor:
        """Return the descriptor of a collection of ``owner`` objects
        referencing instances of ``parent``."""

        return AssociationDescriptor(
            self._owner,
            self._key,
            self._id_attr,
            self._type_attr,
            self._type_code,
            ReferenceDirection.ONETOMANY,
            parent,
            parent_key,
        )

    @property
    def owner(self) -> Type[Any]:
        return self._owner

    @property
    def key(self) -> str:
        return self._key

    @property
    def id_attr(self) -> str:
        return self._id_attr

    @property
    def type_attr(self) -> str:
        return self._type_attr

    @property
    def type_code(self) -> PolymorphicTypeCode:
        return self._type_code

    @property
    def direction(self) -> ReferenceDirection:
        return self._direction

    @property
    def parent(self) -> Type[Any]:
        return self._parent

    @property
    def parent_key(self) -> str:
        return self._parent_key

    @property
    def registry(self) -> TypeRegistry:
        return self._type_code.registry

    @property
    def is_global(self) -> bool:
        return self._type_code.is_global

    @property
    def role(self) -> Optional[str]:
        return self._type_code.role

    @property
    def id_column(self) -> Any:
        return getattr(self._owner, self._id_attr)

    @property
    def type_column(self) -> Any:
        return getattr(self._owner, self._type_attr)

    def identity_of(self, value: Any) -> Any:
        """Return the primary key value of a related instance."""

        state = inspect(value)
        mapper = state.mapper
        if len(mapper.primary_key) != 1:
            raise sa_exc.ArgumentError(
                "Polymorphic reference %s can't refer to %s, which has a "
                "composite primary key" % (self, mapper)
            )
        if state.identity is not None:
            ident = state.identity[0]
        else:
            ident = mapper.primary_key_from_instance(value)[0]
        if ident is None:
            raise sa_exc.InvalidRequestError(
                "Can't assign %r to polymorphic reference %s; it has no "
                "primary key identity.  Flush it first." % (value, self)
            )
        return ident

    def name_reference(self, value: Any) -> Tuple[Any, Optional[str]]:
        """Return the ``(id, name)`` pair stored for ``value``.

        ``value`` is a mapped instance, an ``(id, name)`` tuple, or
        ``None``.  The name of a mapped instance is its storage name; a
        name given in a tuple is used as is.

        """
        if value is None:
            return None, None
        elif isinstance(value, tuple):
            if len(value) != 2:
                raise sa_exc.ArgumentError(
                    "Expected an (id, type name) pair for polymorphic "
                    "reference %s; got %r" % (self, value)
                )
            ident, name = value
            self._check_nullity(ident, name)
            if name is not None:
                self.registry.encode(name)
            return ident, name
        else:
            name = storage_name_for(value)
            # unknown types are rejected before the identity is consulted
            self.registry.encode(name)
            return self.identity_of(value), name

    def encode_reference(self, value: Any) -> Tuple[Any, Optional[int]]:
        """Return the ``(id, code)`` pair persisted for ``value``."""

        ident, name = self.name_reference(value)
        if name is None:
            return None, None
        return ident, self.registry.encode(name)

    def decode_reference(
        self, ident: Any, code: Optional[int]
    ) -> Tuple[Any, Optional[str]]:
        """Return the ``(id, name)`` pair for a persisted ``(id, code)``."""

        self._check_nullity(ident, code)
        if code is None:
            return None, None
        return ident, self.registry.decode(code)

    def reference_for(self, instance: Any) -> Tuple[Any, Optional[str]]:
        """Return the current ``(id, name)`` pair of an owning instance."""

        ident = getattr(instance, self._id_attr)
        name = getattr(instance, self._type_attr)
        self._check_nullity(ident, name)
        if name is not None:
            self.registry.encode(name)
        return ident, name

    def assign(self, instance: Any, ident: Any, name: Optional[str]) -> None:
        setattr(instance, self._id_attr, ident)
        setattr(instance, self._type_attr, name)

    def class_for(self, name: str) -> Type[Any]:
        """Return the mapped class to load for type ``name``."""

        try:
            return self._classes[name]
        except KeyError:
            cls = class_for_storage_name(inspect(self._owner).registry, name)
            self._classes[name] = cls
            return cls

    def criterion(
        self, ident: Any, name: Optional[str]
    ) -> ColumnElement[bool]:
        """SQL criterion matching owning rows referencing ``(id, name)``."""

        if name is None:
            return and_(
                self.id_column.is_(None), self.type_column.is_(None)
            )
        return and_(self.id_column == ident, self.type_column == name)

    def _check_nullity(self, ident: Any, type_: Any) -> None:
        if (ident is None) != (type_ is None):
            raise exc.InconsistentNullityError(
                "Polymorphic reference %s has id %r and type %r; both must "
                "be NULL or both non-NULL" % (self, ident, type_)
            )

    def __str__(self) -> str:
        return "%s.%s" % (self._parent.__name__, self._parent_key)

    def __repr__(self) -> str:
        return "<%s %s (%s.%s, %s.%s) %s>" % (
            self.__class__.__name__,
            self,
            self._owner.__name__,
            self._id_attr,
            self._owner.__name__,
            self._type_attr,
            self._direction.name,
        )
