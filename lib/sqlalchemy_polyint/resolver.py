# sqlalchemy_polyint/resolver.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Loading of polymorphic references.

:class:`.Resolver` turns the ``(id, name)`` pairs held by owning objects
into related objects, using a :class:`sqlalchemy.orm.Session`.  A batch of
owning objects costs one SELECT per distinct referenced type, regardless
of how many objects are in the batch.

Batch loading may be applied to a statement as it executes, using
:func:`.preload_references` together with a :class:`.ReferenceLoader`
listening on the session::

    loader = ReferenceLoader()
    loader.listen_on_session(Session)

    links = session.scalars(
        select(Link).options(preload_references("source", "target"))
    ).all()

"""
from __future__ import annotations

from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Sequence
from typing import Set
from typing import Tuple
from typing import Type

from sqlalchemy import event
from sqlalchemy import false
from sqlalchemy import inspect
from sqlalchemy import log
from sqlalchemy import not_
from sqlalchemy import or_
from sqlalchemy import select
from sqlalchemy.engine import Row
from sqlalchemy.orm import InstanceState
from sqlalchemy.orm import Session
from sqlalchemy.orm.interfaces import UserDefinedOption
from sqlalchemy.sql import operators
from sqlalchemy.sql.elements import ColumnElement

from .descriptor import AssociationDescriptor


_NO_CACHE = object()


def _cache_key(key: str) -> str:
    return "_polyint_%s" % key


def get_cached(instance: Any, key: str, ident: Any, name: Any) -> Any:
    """Return the related object memoized on ``instance`` for reference
    ``key``, provided it was loaded for the same ``(id, name)``."""

    cached = instance.__dict__.get(_cache_key(key))
    if cached is not None and cached[0] == ident and cached[1] == name:
        return cached[2]
    return _NO_CACHE


def set_cached(
    instance: Any, key: str, ident: Any, name: Any, target: Any
) -> None:
    instance.__dict__[_cache_key(key)] = (ident, name, target)


def discard_cached(instance: Any, key: str) -> None:
    instance.__dict__.pop(_cache_key(key), None)


@log.class_logger
class Resolver:
    """Loads the targets of polymorphic references within a
    :class:`sqlalchemy.orm.Session`."""

    def __init__(self, session: Session):
        self.session = session

    def fetch_one(self, class_: Type[Any], ident: Any) -> Optional[Any]:
        return self.session.get(class_, ident)

    def fetch_many(
        self, class_: Type[Any], idents: Iterable[Any]
    ) -> Sequence[Any]:
        idents = list(idents)
        if self._should_log_debug():
            self.logger.debug(
                "Loading %d %s instance(s) by primary key",
                len(idents),
                class_.__name__,
            )
        pk = inspect(class_).primary_key[0]
        return (
            self.session.scalars(select(class_).where(pk.in_(idents)))
            .unique()
            .all()
        )

    def load(self, descriptor: AssociationDescriptor, instance: Any) -> Any:
        """Load the object referenced by ``instance``."""

        ident, name = descriptor.reference_for(instance)
        if name is None:
            return None
        return self.fetch_one(descriptor.class_for(name), ident)

    def load_all(
        self, descriptor: AssociationDescriptor, instances: Iterable[Any]
    ) -> List[Any]:
        """Load the objects referenced by each of ``instances``.

        Issues one SELECT per distinct referenced type.  Each target is
        memoized on its owning instance; the targets are returned in the
        order of ``instances``, with ``None`` for absent references and
        for references whose row no longer exists.

        """
        instances = list(instances)
        references: List[Tuple[Any, Optional[str]]] = []
        groups: Dict[str, Set[Any]] = {}
        for instance in instances:
            ident, name = descriptor.reference_for(instance)
            references.append((ident, name))
            if name is not None:
                groups.setdefault(name, set()).add(ident)

        loaded: Dict[Tuple[str, Any], Any] = {}
        for name, idents in groups.items():
            for target in self.fetch_many(descriptor.class_for(name), idents):
                loaded[(name, inspect(target).identity[0])] = target

        targets = []
        for instance, (ident, name) in zip(instances, references):
            target = loaded.get((name, ident)) if name is not None else None
            set_cached(instance, descriptor.key, ident, name, target)
            targets.append(target)
        return targets


def build_predicate(
    descriptor: AssociationDescriptor,
    value: Any,
    operator: Any = operators.eq,
) -> ColumnElement[bool]:
    """Return SQL criteria comparing a polymorphic reference to ``value``.

    ``value`` is a mapped instance, an ``(id, name)`` pair, ``None``, or,
    for ``operator`` of ``in_op`` / ``not_in_op``, a sequence of mapped
    instances.  Type names are checked against the registry immediately,
    so an unknown type raises before any statement is executed.

    """
    if operator in (operators.in_op, operators.not_in_op):
        groups: Dict[str, List[Any]] = {}
        for item in value:
            ident, name = descriptor.name_reference(item)
            if name is None:
                continue
            groups.setdefault(name, []).append(ident)
        if groups:
            criterion = or_(
                *[
                    (descriptor.type_column == name)
                    & descriptor.id_column.in_(idents)
                    for name, idents in groups.items()
                ]
            )
        else:
            criterion = false()
        if operator is operators.not_in_op:
            return not_(criterion)
        return criterion

    ident, name = descriptor.name_reference(value)
    criterion = descriptor.criterion(ident, name)
    if operator is operators.eq:
        return criterion
    elif operator is operators.ne:
        return not_(criterion)
    else:
        raise NotImplementedError(
            "Operator %r is not supported for polymorphic reference %s"
            % (operator, descriptor)
        )


def inverse_criterion(
    descriptor: AssociationDescriptor, target: Any
) -> ColumnElement[bool]:
    """SQL criteria matching the owning rows that reference ``target``."""

    ident, name = descriptor.name_reference(target)
    return descriptor.criterion(ident, name)


class PreloadReferences(UserDefinedOption):
    """Statement option naming polymorphic references to batch load."""

    propagate_to_loaders = False

    def __init__(self, *keys: str):
        super().__init__(payload=keys)

    @property
    def keys(self) -> Tuple[str, ...]:
        return self.payload

    def _gen_cache_key(self, anon_map: Any, bindparams: Any) -> None:
        return None


def preload_references(*keys: str) -> PreloadReferences:
    """Batch load the named polymorphic references of the entities a
    statement returns.

    Requires a :class:`.ReferenceLoader` listening on the session.

    """
    return PreloadReferences(*keys)


def _entities_in(data: Iterable[Any]) -> List[Any]:
    entities = []
    for item in data:
        elements = item if isinstance(item, Row) else (item,)
        for element in elements:
            state = inspect(element, raiseerr=False)
            if isinstance(state, InstanceState):
                entities.append(element)
    return entities


def preload(
    session: Session, instances: Iterable[Any], key: str
) -> List[Any]:
    """Batch load reference ``key`` of already loaded ``instances``.

    Instances lacking the reference are skipped.

    """
    from .attributes import reference_descriptor

    by_descriptor: Dict[int, Tuple[AssociationDescriptor, List[Any]]] = {}
    for instance in instances:
        descriptor = reference_descriptor(type(instance), key)
        if descriptor is None:
            continue
        by_descriptor.setdefault(id(descriptor), (descriptor, []))[1].append(
            instance
        )

    resolver = Resolver(session)
    targets = []
    for descriptor, group in by_descriptor.values():
        targets.extend(resolver.load_all(descriptor, group))
    return targets


class ReferenceLoader(log.Identified):
    """Applies :func:`.preload_references` options as statements execute.

    :param echo: if True, log each batch load at INFO level to stdout; if
      ``"debug"``, at DEBUG level.

    """

    echo = log.echo_property()

    def __init__(self, echo: log._EchoFlagType = None):
        log.instance_logger(self, echoflag=echo)

    def listen_on_session(self, session_factory: Any) -> None:
        event.listen(session_factory, "do_orm_execute", self._do_orm_execute)

    def _do_orm_execute(self, orm_context: Any) -> Any:
        keys: List[str] = []
        for opt in orm_context.user_defined_options:
            if isinstance(opt, PreloadReferences):
                keys.extend(opt.keys)

        if not keys or not orm_context.is_select:
            return None

        frozen = orm_context.invoke_statement().freeze()
        entities = _entities_in(frozen.data)
        for key in keys:
            targets = preload(orm_context.session, entities, key)
            if self._should_log_info():
                self.logger.info(
                    "Preloaded %r for %d instance(s)", key, len(targets)
                )
        return frozen()
