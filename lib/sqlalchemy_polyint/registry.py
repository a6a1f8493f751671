# sqlalchemy_polyint/registry.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Type code registries.

A :class:`.TypeRegistry` is a bijection between integer type codes, which
are what gets persisted in a polymorphic ``*_type`` column, and type
names, which are what application code sees.

Registries come in two scopes.  A *local* registry is built from a
literal code table given where a single type column is declared::

    source_type = mapped_column(
        PolymorphicTypeCode(table={10: "Person", 11: "Animal"})
    )

A *global* registry is shared by every type column naming the same role::

    source_type = mapped_column(PolymorphicTypeCode(role="source"))

The table for a role is either configured explicitly with
:func:`.configure_role`, or derived from the participants of the role,
numbered ``1..n`` in alphabetical order of name.  Derived codes change
whenever a participant is added or renamed, so any schema that has
persisted data should configure an explicit table.

"""
from __future__ import annotations

import threading
from typing import Dict
from typing import Iterable
from typing import Iterator
from typing import List
from typing import Mapping
from typing import Optional
from typing import Set

from sqlalchemy import exc as sa_exc
from sqlalchemy import log
from sqlalchemy import util

from . import exc


class TypeRegistry:
    """Bidirectional mapping of type codes and type names.

    A registry accepts :meth:`.register` calls until it is frozen; frozen
    registries are read-only and safe to share between threads.

    """

    __slots__ = ("scope", "_by_code", "_by_name", "_frozen")

    def __init__(self, scope: str = "type registry"):
        self.scope = scope
        self._by_code: Dict[int, str] = {}
        self._by_name: Dict[str, int] = {}
        self._frozen = False

    @classmethod
    def from_table(
        cls, table: Mapping[int, str], scope: str = "type registry"
    ) -> TypeRegistry:
        """Build and freeze a registry from a literal code table."""

        registry = cls(scope)
        for code, name in table.items():
            registry.register(code, name)
        registry.freeze()
        return registry

    @classmethod
    def derived(
        cls, names: Iterable[str], scope: str = "type registry"
    ) -> TypeRegistry:
        """Build and freeze a registry numbering ``names`` alphabetically,
        starting at 1."""

        registry = cls(scope)
        for code, name in enumerate(sorted(set(names)), 1):
            registry.register(code, name)
        registry.freeze()
        return registry

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def register(self, code: int, name: str) -> None:
        """Add a mapping of ``code`` to ``name``.

        Registering a pair that is already present is a no-op.

        """
        if self._frozen:
            raise exc.RegistryFrozenError(
                "Can't register type code %r for %r; %s is frozen"
                % (code, name, self.scope)
            )
        if isinstance(code, bool) or not isinstance(code, int):
            raise sa_exc.ArgumentError(
                "Type codes must be integers; got %r for %r" % (code, name)
            )
        if not isinstance(name, str) or not name:
            raise sa_exc.ArgumentError(
                "Type names must be non-empty strings; got %r for code %r"
                % (name, code)
            )

        existing_name = self._by_code.get(code)
        if existing_name is not None and existing_name != name:
            raise exc.DuplicateCodeError(code, existing_name, name, self.scope)
        existing_code = self._by_name.get(name)
        if existing_code is not None and existing_code != code:
            raise exc.DuplicateNameError(name, existing_code, code, self.scope)

        self._by_code[code] = name
        self._by_name[name] = code

    def encode(self, name: str) -> int:
        try:
            return self._by_name[name]
        except (KeyError, TypeError):
            raise exc.UnknownTypeError(name, self.scope) from None

    def decode(self, code: int) -> str:
        try:
            return self._by_code[code]
        except (KeyError, TypeError):
            raise exc.UnknownCodeError(code, self.scope) from None

    def all_mappings(self) -> util.immutabledict[int, str]:
        return util.immutabledict(self._by_code)

    def names(self) -> List[str]:
        return list(self._by_name)

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def __iter__(self) -> Iterator[int]:
        return iter(self._by_code)

    def __len__(self) -> int:
        return len(self._by_code)

    def __repr__(self) -> str:
        return "%s(%s, %r)" % (
            self.__class__.__name__,
            self.scope,
            dict(self._by_code),
        )


@log.class_logger
class _RoleRegistries:
    """Process-wide registries, one per role."""

    def __init__(self) -> None:
        self.mutex = threading.RLock()
        self.tables: Dict[str, util.immutabledict[int, str]] = {}
        self.participants: Dict[str, Set[str]] = {}
        self.registries: Dict[str, TypeRegistry] = {}

    def configure(self, role: str, table: Mapping[int, str]) -> None:
        table = util.immutabledict(table)
        with self.mutex:
            existing = self.tables.get(role)
            if existing is not None:
                if dict(existing) != dict(table):
                    raise sa_exc.InvalidRequestError(
                        "Role %r is already configured with code table %r"
                        % (role, dict(existing))
                    )
                return
            if role in self.registries:
                raise exc.RegistryFrozenError(
                    "Can't configure a code table for role %r; codes for "
                    "this role were already derived as %r"
                    % (role, dict(self.registries[role].all_mappings()))
                )
            # validate now, not on first use
            TypeRegistry.from_table(table, _role_scope(role))
            self.tables[role] = table

    def add_participant(self, role: str, name: str) -> None:
        with self.mutex:
            names = self.participants.setdefault(role, set())
            if name in names:
                return
            registry = self.registries.get(role)
            if registry is not None and role not in self.tables:
                raise exc.RegistryFrozenError(
                    "Can't add %r to role %r; codes for this role were "
                    "already derived as %r"
                    % (name, role, dict(registry.all_mappings()))
                )
            names.add(name)

    def enlist(self, role: str, name: str) -> None:
        with self.mutex:
            table = self.tables.get(role)
            if table is not None and name not in table.values():
                raise exc.UnknownTypeError(name, _role_scope(role))
            self.add_participant(role, name)

    def get(self, role: str) -> TypeRegistry:
        try:
            return self.registries[role]
        except KeyError:
            pass

        # participants are recorded as mappers configure
        from sqlalchemy.orm import configure_mappers

        configure_mappers()

        with self.mutex:
            if role in self.registries:
                return self.registries[role]

            scope = _role_scope(role)
            if role in self.tables:
                registry = TypeRegistry.from_table(self.tables[role], scope)
                self.logger.info(
                    "Configured type codes for role %r: %r",
                    role,
                    dict(registry.all_mappings()),
                )
            elif self.participants.get(role):
                registry = TypeRegistry.derived(
                    self.participants[role], scope
                )
                self.logger.info(
                    "Derived type codes for role %r from %d participant(s): "
                    "%r",
                    role,
                    len(registry),
                    dict(registry.all_mappings()),
                )
            else:
                raise exc.UnknownRoleError(
                    "Role %r has no configured code table and no "
                    "participating types" % (role,)
                )
            self.registries[role] = registry
            return registry

    def roles(self) -> List[str]:
        with self.mutex:
            return sorted(set(self.tables).union(self.participants))

    def clear(self) -> None:
        with self.mutex:
            self.tables.clear()
            self.participants.clear()
            self.registries.clear()


def _role_scope(role: str) -> str:
    return "role %r" % (role,)


_roles = _RoleRegistries()


def configure_role(role: str, table: Mapping[int, str]) -> None:
    """Establish the code table for a global role.

    May be called once per role, before the role's registry is first
    used; repeating an identical table is accepted.

    """
    _roles.configure(role, table)


def add_participant(role: str, name: str) -> None:
    """Record ``name`` as a type taking part in ``role``.

    Participants are only consulted for roles which have no configured
    code table.

    """
    _roles.add_participant(role, name)


def enlist_participant(role: str, name: str) -> None:
    """Record ``name`` as taking part in ``role``, which must list it if
    the role has a configured code table.

    Raises :class:`.UnknownTypeError` for a type missing from the table.

    """
    _roles.enlist(role, name)


def role_registry(role: str) -> TypeRegistry:
    """Return the frozen :class:`.TypeRegistry` for a global role."""

    return _roles.get(role)


def configure_roles(roles: Optional[Iterable[str]] = None) -> None:
    """Build the registries of all known roles, or of those given.

    This is the explicit initialization step for global registries; it
    calls :func:`sqlalchemy.orm.configure_mappers` so that every mapped
    participant is accounted for.

    """
    from sqlalchemy.orm import configure_mappers

    configure_mappers()
    for role in roles if roles is not None else _roles.roles():
        _roles.get(role)


def clear_roles() -> None:
    """Remove all global role state.

    This is intended for test suites, alongside
    :func:`sqlalchemy.orm.clear_mappers`.

    """
    _roles.clear()
