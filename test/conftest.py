#!/usr/bin/env python
"""
pytest plugin script.

Puts ./lib/ ahead of any installed sqlalchemy_polyint and enables assert
rewriting for SQLAlchemy's testing assertions.

"""
import os
import sys

import pytest


# this requires that sqlalchemy.testing was not already
# imported in order to work
pytest.register_assert_rewrite("sqlalchemy.testing.assertions")


if not sys.flags.no_user_site:
    # this is needed so that plain "pytest" works against the package
    # checked out in ./lib/.  We check no_user_site to honor the use of
    # this flag.
    sys.path.insert(
        0,
        os.path.abspath(
            os.path.join(
                os.path.dirname(os.path.abspath(__file__)), "..", "lib"
            )
        ),
    )
