# sqlalchemy_polyint/types.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""The integer type-code column type."""

from __future__ import annotations

from typing import Any
from typing import Mapping
from typing import Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy import Integer
from sqlalchemy.sql import operators
from sqlalchemy.types import TypeDecorator

from . import registry as _registry


class PolymorphicTypeCode(TypeDecorator):
    """Stores type names as integer codes.

    Python-side values are type names; database-side values are the codes
    of the applicable :class:`.TypeRegistry`.  Exactly one of ``role`` or
    ``table`` is given::

        # global registry shared by every "source" column
        source_type = mapped_column(PolymorphicTypeCode(role="source"))

        # local registry for this column only
        target_type = mapped_column(
            PolymorphicTypeCode(table={10: "Food", 13: "Drink"})
        )

    Comparisons against a column of this type accept type names, so
    ``Link.source_type == "Animal"`` binds the code for ``"Animal"``.

    """

    impl = Integer
    cache_ok = True

    class comparator_factory(TypeDecorator.Comparator):
        """Looks up literal type names as comparisons are built."""

        def _check_names(self, op: Any, other: Any) -> None:
            if op in (operators.in_op, operators.not_in_op):
                if not isinstance(other, (list, tuple, set, frozenset)):
                    return
                names = other
            else:
                names = (other,)
            for name in names:
                if isinstance(name, str):
                    self.expr.type.registry.encode(name)

        def operate(self, op: Any, *other: Any, **kwargs: Any) -> Any:
            for value in other:
                self._check_names(op, value)
            return super().operate(op, *other, **kwargs)

        def reverse_operate(self, op: Any, other: Any, **kwargs: Any) -> Any:
            self._check_names(op, other)
            return super().reverse_operate(op, other, **kwargs)

    def __init__(
        self,
        role: Optional[str] = None,
        table: Optional[Mapping[int, str]] = None,
    ):
        if (role is None) == (table is None):
            raise sa_exc.ArgumentError(
                "PolymorphicTypeCode requires exactly one of 'role' or "
                "'table'"
            )
        super().__init__()
        self.role = role
        if table is not None:
            # hashable, for the SQL compilation cache key
            self.table: Optional[tuple] = tuple(table.items())
            self._local_registry: Optional[_registry.TypeRegistry] = (
                _registry.TypeRegistry.from_table(
                    table, "code table %r" % (dict(table),)
                )
            )
        else:
            self.table = None
            self._local_registry = None

    @property
    def is_global(self) -> bool:
        return self._local_registry is None

    @property
    def registry(self) -> _registry.TypeRegistry:
        if self._local_registry is not None:
            return self._local_registry
        return _registry.role_registry(self.role)

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[int]:
        if value is None:
            return None
        return self.registry.encode(value)

    def process_result_value(self, value: Any, dialect: Any) -> Optional[str]:
        if value is None:
            return None
        return self.registry.decode(value)

    def __repr__(self) -> str:
        if self.role is not None:
            return "%s(role=%r)" % (self.__class__.__name__, self.role)
        else:
            return "%s(table=%r)" % (self.__class__.__name__, dict(self.table))
