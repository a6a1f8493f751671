# sqlalchemy_polyint/attributes.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Polymorphic reference and collection attributes.

A polymorphic reference is declared on the mapped class holding the id
and type columns::

    class Link(Base):
        __tablename__ = "links"

        id = mapped_column(Integer, primary_key=True)
        source_id = mapped_column(Integer)
        source_type = mapped_column(PolymorphicTypeCode(role="source"))

        source = polymorphic_reference()

The referenced classes may declare the inverse collection::

    class Animal(Base):
        __tablename__ = "animals"

        id = mapped_column(Integer, primary_key=True)

        source_links = polymorphic_collection("Link", "source")

Assigning ``link.source = animal`` writes ``source_id`` and
``source_type``; ``source_type`` reads back as the type name ``"Animal"``
while the integer code is what gets persisted.  ``Link.source == animal``
at the class level produces SQL criteria against both columns.

"""
from __future__ import annotations

from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import Optional
from typing import Tuple
from typing import Type

from sqlalchemy import and_
from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy import inspect
from sqlalchemy import literal
from sqlalchemy.orm import foreign
from sqlalchemy.orm import InspectionAttrExtensionType
from sqlalchemy.orm import interfaces
from sqlalchemy.orm import Mapper
from sqlalchemy.orm import object_session
from sqlalchemy.orm import relationship
from sqlalchemy.orm import remote
from sqlalchemy.orm import exc as orm_exc
from sqlalchemy.sql import operators

from . import resolver
from .descriptor import AssociationDescriptor
from .naming import storage_name_for
from .registry import enlist_participant


class PolymorphicExtensionType(InspectionAttrExtensionType):
    POLYMORPHIC_REFERENCE = "POLYMORPHIC_REFERENCE"
    """Symbol indicating an :class:`.InspectionAttr` that's
    of type :class:`.PolymorphicReference`.

    Is assigned to the :attr:`.InspectionAttr.extension_type`
    attribute.

    """


def _is_mapped(cls: Type[Any]) -> bool:
    return inspect(cls, raiseerr=False) is not None


class PolymorphicReference(interfaces.InspectionAttrInfo):
    """A descriptor for a many-to-one reference to one of several types.

    See :func:`.polymorphic_reference`.

    """

    is_attribute = True
    extension_type = PolymorphicExtensionType.POLYMORPHIC_REFERENCE

    def __init__(
        self,
        id_attr: Optional[str] = None,
        type_attr: Optional[str] = None,
        doc: Optional[str] = None,
    ):
        self.id_attr = id_attr
        self.type_attr = type_attr
        self.key: Optional[str] = None
        self.owner: Optional[Type[Any]] = None
        self._descriptors: Dict[Type[Any], AssociationDescriptor] = {}
        if doc:
            self.__doc__ = doc

    def __set_name__(self, owner: Type[Any], name: str) -> None:
        self.owner = owner
        self.key = name
        if self.id_attr is None:
            self.id_attr = "%s_id" % name
        if self.type_attr is None:
            self.type_attr = "%s_type" % name

    def descriptor_for(self, cls: Type[Any]) -> AssociationDescriptor:
        """Return the :class:`.AssociationDescriptor` for this reference
        as seen from mapped class ``cls``."""

        # a reference declared on a mixin is described per mapped class
        owner = self.owner if _is_mapped(self.owner) else cls
        try:
            return self._descriptors[owner]
        except KeyError:
            descriptor = AssociationDescriptor.for_mapped_class(
                owner, self.key, self.id_attr, self.type_attr
            )
            self._descriptors[owner] = descriptor
            return descriptor

    @property
    def descriptor(self) -> AssociationDescriptor:
        return self.descriptor_for(self.owner)

    def __get__(self, instance: Any, owner: Type[Any]) -> Any:
        if instance is None:
            return ReferenceComparator(self, owner)

        descriptor = self.descriptor_for(type(instance))
        ident = getattr(instance, descriptor.id_attr)
        name = getattr(instance, descriptor.type_attr)
        cached = resolver.get_cached(instance, self.key, ident, name)
        if cached is not resolver._NO_CACHE:
            return cached

        ident, name = descriptor.reference_for(instance)
        if name is None:
            target = None
        else:
            session = object_session(instance)
            if session is None:
                raise orm_exc.DetachedInstanceError(
                    "Parent instance %r is not bound to a Session; load "
                    "operation of polymorphic reference '%s' cannot proceed"
                    % (instance, descriptor)
                )
            target = resolver.Resolver(session).load(descriptor, instance)
        resolver.set_cached(instance, self.key, ident, name, target)
        return target

    def __set__(self, instance: Any, value: Any) -> None:
        descriptor = self.descriptor_for(type(instance))
        ident, name = descriptor.name_reference(value)
        descriptor.assign(instance, ident, name)
        if isinstance(value, tuple):
            resolver.discard_cached(instance, self.key)
        else:
            resolver.set_cached(instance, self.key, ident, name, value)

    def __delete__(self, instance: Any) -> None:
        self.__set__(instance, None)

    def raw_type_code(self, instance: Any) -> Optional[int]:
        """Return the integer code stored for ``instance``'s type column."""

        descriptor = self.descriptor_for(type(instance))
        name = getattr(instance, descriptor.type_attr)
        if name is None:
            return None
        return descriptor.registry.encode(name)

    def _configure(self, mapper: Mapper[Any], class_: Type[Any]) -> None:
        descriptor = self.descriptor_for(class_)

        def validate_type(
            target: Any, value: Any, oldvalue: Any, initiator: Any
        ) -> Any:
            if value is not None:
                descriptor.registry.encode(value)
            return value

        def check_nullity(mapper: Any, connection: Any, target: Any) -> None:
            descriptor.reference_for(target)

        event.listen(
            getattr(class_, descriptor.type_attr),
            "set",
            validate_type,
            retval=True,
            propagate=True,
        )
        event.listen(mapper, "before_insert", check_nullity, propagate=True)
        event.listen(mapper, "before_update", check_nullity, propagate=True)

    def __repr__(self) -> str:
        return "%s(%r, %r)" % (
            self.__class__.__name__,
            self.id_attr,
            self.type_attr,
        )


class ReferenceComparator:
    """Class-level view of a :class:`.PolymorphicReference`.

    Produces SQL criteria::

        select(Link).where(Link.source == animal)
        select(Link).where(Link.source.in_([animal, person]))
        select(Link).where(Link.source.is_(None))

    """

    __hash__ = None  # type: ignore

    def __init__(self, reference: PolymorphicReference, owner: Type[Any]):
        self.reference = reference
        self.owner = owner

    @property
    def descriptor(self) -> AssociationDescriptor:
        return self.reference.descriptor_for(self.owner)

    @property
    def type_mapping(self) -> Any:
        """The code-to-name mapping used by this reference."""

        return self.descriptor.registry.all_mappings()

    def raw_type_code(self, instance: Any) -> Optional[int]:
        return self.reference.raw_type_code(instance)

    def preload(self, session: Any, instances: Iterable[Any]) -> Any:
        """Batch load this reference for ``instances``."""

        return resolver.Resolver(session).load_all(self.descriptor, instances)

    def __eq__(self, other: Any) -> Any:  # type: ignore[override]
        return resolver.build_predicate(self.descriptor, other, operators.eq)

    def __ne__(self, other: Any) -> Any:  # type: ignore[override]
        return resolver.build_predicate(self.descriptor, other, operators.ne)

    def in_(self, other: Iterable[Any]) -> Any:
        return resolver.build_predicate(
            self.descriptor, other, operators.in_op
        )

    def not_in(self, other: Iterable[Any]) -> Any:
        return resolver.build_predicate(
            self.descriptor, other, operators.not_in_op
        )

    def is_(self, other: None) -> Any:
        return resolver.build_predicate(self.descriptor, other, operators.eq)

    def is_not(self, other: None) -> Any:
        return resolver.build_predicate(self.descriptor, other, operators.ne)

    def __repr__(self) -> str:
        return "<%s %s.%s>" % (
            self.__class__.__name__,
            self.owner.__name__,
            self.reference.key,
        )


def polymorphic_reference(
    id_attr: Optional[str] = None,
    type_attr: Optional[str] = None,
    doc: Optional[str] = None,
) -> PolymorphicReference:
    """Declare a polymorphic many-to-one reference.

    :param id_attr: name of the mapped attribute holding the referenced
      primary key.  Defaults to ``<key>_id``.
    :param type_attr: name of the mapped attribute whose column is of
      type :class:`.PolymorphicTypeCode`.  Defaults to ``<key>_type``.
    :param doc: docstring for the attribute.

    Assignment accepts a mapped instance, ``None``, or an
    ``(id, type name)`` tuple; reading loads the referenced instance from
    the owning object's session and memoizes it until either column
    changes.

    """
    return PolymorphicReference(id_attr, type_attr, doc)


class PolymorphicCollection:
    """Placeholder for a one-to-many collection of referencing objects.

    Replaced by a :func:`sqlalchemy.orm.relationship` once the owning
    class is configured.  See :func:`.polymorphic_collection`.

    """

    def __init__(
        self,
        argument: Any,
        reference_key: str,
        **kw: Any,
    ):
        self.argument = argument
        self.reference_key = reference_key
        self.kw = kw
        self.key: Optional[str] = None
        self.owner: Optional[Type[Any]] = None

    def __set_name__(self, owner: Type[Any], name: str) -> None:
        self.owner = owner
        self.key = name

    def _resolve_argument(self, mapper: Mapper[Any]) -> Type[Any]:
        argument = self.argument
        if isinstance(argument, str):
            for other in mapper.registry.mappers:
                if other.class_.__name__ == argument:
                    return other.class_
            raise sa_exc.InvalidRequestError(
                "When initializing polymorphic collection %s.%s, expression "
                "%r failed to locate a name" % (
                    mapper.class_.__name__,
                    self.key,
                    argument,
                )
            )
        elif isinstance(argument, type):
            return argument
        else:
            return argument()

    def _configure(self, mapper: Mapper[Any], class_: Type[Any]) -> None:
        referencing = self._resolve_argument(mapper)
        reference = _reference_on(referencing, self.reference_key)
        if reference is None:
            raise sa_exc.ArgumentError(
                "Polymorphic collection %s.%s refers to %s.%s, which is not "
                "a polymorphic reference"
                % (
                    class_.__name__,
                    self.key,
                    referencing.__name__,
                    self.reference_key,
                )
            )
        if len(mapper.primary_key) != 1:
            raise sa_exc.ArgumentError(
                "Polymorphic collection %s.%s requires a single-column "
                "primary key on %s" % (class_.__name__, self.key, mapper)
            )

        forward = reference.descriptor_for(referencing)
        descriptor = forward.inverse(class_, self.key)
        name = storage_name_for(class_)
        if forward.is_global:
            enlist_participant(forward.role, name)
        else:
            forward.registry.encode(name)

        # collections over the same reference all write its columns
        siblings = (
            inspect(referencing)
            .info.setdefault("polymorphic_collections", {})
            .setdefault(self.reference_key, set())
        )
        siblings.add(self.key)
        kw = dict(self.kw)
        kw.setdefault("overlaps", ",".join(sorted(siblings)))
        mapper.add_property(
            self.key,
            relationship(
                referencing,
                primaryjoin=and_(
                    mapper.primary_key[0]
                    == foreign(remote(forward.id_column)),
                    forward.type_column
                    == literal(name, forward.type_column.type),
                ),
                **kw,
            ),
        )

        attr = getattr(class_, self.key)
        event.listen(
            attr, "append", _append_listener(descriptor), propagate=True
        )
        event.listen(
            attr, "remove", _remove_listener(descriptor), propagate=True
        )


def _append_listener(descriptor: AssociationDescriptor) -> Callable[..., Any]:
    def append(target: Any, value: Any, initiator: Any) -> None:
        state = inspect(target)
        ident = state.identity[0] if state.identity else None
        name = storage_name_for(target)
        descriptor.assign(value, ident, name)
        resolver.set_cached(value, descriptor.key, ident, name, target)

    return append


def _remove_listener(descriptor: AssociationDescriptor) -> Callable[..., Any]:
    def remove(target: Any, value: Any, initiator: Any) -> None:
        descriptor.assign(value, None, None)
        resolver.discard_cached(value, descriptor.key)

    return remove


def polymorphic_collection(
    argument: Any, reference_key: str, **kw: Any
) -> PolymorphicCollection:
    """Declare the collection of objects whose polymorphic reference
    points at an instance of the declaring class.

    :param argument: the referencing mapped class, its name, or a callable
      returning it.
    :param reference_key: name of the :func:`.polymorphic_reference` on the
      referencing class.
    :param \\**kw: passed to :func:`sqlalchemy.orm.relationship`, e.g.
      ``order_by``, ``lazy``, ``cascade``.

    The collection is a regular one-to-many relationship joined on both
    the id and type columns, so it supports lazy, select-IN and joined
    loading.  Appending an object sets its reference to the parent;
    removing it sets the reference to ``None``.  Declaring a collection
    against a globally-coded reference makes the declaring class a
    participant of that role.

    """
    return PolymorphicCollection(argument, reference_key, **kw)


def _references_of(
    cls: Type[Any],
) -> Iterator[Tuple[str, PolymorphicReference]]:
    seen = set()
    for klass in cls.__mro__:
        for key, value in klass.__dict__.items():
            if key in seen:
                continue
            seen.add(key)
            if isinstance(value, PolymorphicReference):
                yield key, value


def _reference_on(cls: Type[Any], key: str) -> Optional[PolymorphicReference]:
    for klass in cls.__mro__:
        if key in klass.__dict__:
            value = klass.__dict__[key]
            if isinstance(value, PolymorphicReference):
                return value
            return None
    return None


def reference_descriptor(
    cls: Type[Any], key: str
) -> Optional[AssociationDescriptor]:
    """Return the :class:`.AssociationDescriptor` of polymorphic reference
    ``key`` on ``cls``, or ``None`` if ``cls`` has no such reference."""

    reference = _reference_on(cls, key)
    if reference is None:
        return None
    return reference.descriptor_for(cls)


@event.listens_for(Mapper, "mapper_configured")
def _configure_polymorphic_attributes(
    mapper: Mapper[Any], class_: Type[Any]
) -> None:
    inherited = mapper.inherits.class_ if mapper.inherits is not None else None

    for key, reference in _references_of(class_):
        # listeners on a mapped superclass propagate
        if (
            inherited is not None
            and _reference_on(inherited, key) is reference
        ):
            continue
        reference._configure(mapper, class_)

    for key, value in list(class_.__dict__.items()):
        if isinstance(value, PolymorphicCollection):
            value._configure(mapper, class_)

    for role in getattr(class_, "__polymorphic_roles__", ()):
        enlist_participant(role, storage_name_for(class_))
