# sqlalchemy_polyint/exc.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Exceptions used with sqlalchemy-polyint.

The base exception class is :exc:`.PolymorphicTypeError`, itself a
:exc:`sqlalchemy.exc.SQLAlchemyError`.  Registry construction conflicts
are also :exc:`sqlalchemy.exc.ArgumentError`; lookups that miss are also
``KeyError``; invalid runtime state is also
:exc:`sqlalchemy.exc.InvalidRequestError`.

"""
from __future__ import annotations

from typing import Any
from typing import Optional

from sqlalchemy import exc as sa_exc


class PolymorphicTypeError(sa_exc.SQLAlchemyError):
    """Generic error class."""


class DuplicateCodeError(PolymorphicTypeError, sa_exc.ArgumentError):
    """A type code is already mapped to a different type name."""

    def __init__(self, code: int, existing: str, name: str, scope: str):
        self.code = code
        self.existing = existing
        self.name = name
        self.scope = scope
        super().__init__(
            "Type code %r is already mapped to %r in %s; can't map it to %r"
            % (code, existing, scope, name)
        )


class DuplicateNameError(PolymorphicTypeError, sa_exc.ArgumentError):
    """A type name is already mapped to a different type code."""

    def __init__(self, name: str, existing: int, code: int, scope: str):
        self.name = name
        self.existing = existing
        self.code = code
        self.scope = scope
        super().__init__(
            "Type name %r is already mapped to code %r in %s; can't map it "
            "to code %r" % (name, existing, scope, code)
        )


class UnknownTypeError(PolymorphicTypeError, KeyError):
    """A type name has no code.

    Raised when a reference to an instance of an unregistered type is
    assigned or used as query criteria.  This is a configuration error.

    """

    def __init__(self, name: Any, scope: Optional[str] = None):
        self.name = name
        self.scope = scope
        if scope:
            msg = "Type %r has no type code in %s" % (name, scope)
        else:
            msg = "Type %r has no type code" % (name,)
        super().__init__(msg)


class UnknownCodeError(PolymorphicTypeError, KeyError):
    """A stored type code has no name.

    Indicates that persisted data and the code table have drifted apart,
    as distinct from an absent reference, which is stored as NULL.

    """

    def __init__(self, code: Any, scope: Optional[str] = None):
        self.code = code
        self.scope = scope
        if scope:
            msg = "Stored type code %r is not mapped in %s" % (code, scope)
        else:
            msg = "Stored type code %r is not mapped" % (code,)
        super().__init__(msg)


class InconsistentNullityError(
    PolymorphicTypeError, sa_exc.InvalidRequestError
):
    """Exactly one of a reference's id and type is NULL."""


class UnknownRoleError(PolymorphicTypeError, sa_exc.InvalidRequestError):
    """A role has neither a configured code table nor any participants."""


class RegistryFrozenError(PolymorphicTypeError, sa_exc.InvalidRequestError):
    """A registry was modified after it was put into use."""
