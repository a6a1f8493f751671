# sqlalchemy_polyint/config.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Configure global role tables from a flat configuration dictionary."""

from __future__ import annotations

from typing import Any
from typing import Dict
from typing import Mapping

from sqlalchemy import exc as sa_exc
from sqlalchemy import util

from .registry import configure_role


def roles_from_config(
    configuration: Mapping[str, Any],
    prefix: str = "polyint.roles.",
) -> Dict[str, Dict[int, str]]:
    """Configure role code tables using a configuration dictionary.

    The keys of interest in ``configuration`` look like
    ``polyint.roles.<role>.<code>``, with the type name as value, as read
    from a config file::

        [app:main]
        polyint.roles.source.1 = Person
        polyint.roles.source.2 = Animal
        polyint.roles.target.1 = Food

    Each role found is passed to :func:`.configure_role`.  Keys not
    starting with ``prefix`` are ignored.  Returns the parsed tables.

    """
    tables: Dict[str, Dict[int, str]] = {}
    for key, value in configuration.items():
        if not key.startswith(prefix):
            continue
        role, _, code = key[len(prefix) :].rpartition(".")
        if not role:
            raise sa_exc.ArgumentError(
                "Configuration key %r should be of the form "
                "'%s<role>.<code>'" % (key, prefix)
            )
        try:
            code = util.asint(code)
        except ValueError:
            raise sa_exc.ArgumentError(
                "Configuration key %r does not end in an integer type code"
                % (key,)
            ) from None
        tables.setdefault(role, {})[code] = value.strip()

    for role, table in tables.items():
        configure_role(role, dict(sorted(table.items())))
    return tables
