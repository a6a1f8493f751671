# sqlalchemy_polyint/__init__.py
# Copyright (C) 2023 the sqlalchemy-polyint authors and contributors
# <see AUTHORS file>
#
# This module is part of sqlalchemy-polyint and is released under
# the MIT License: https://www.opensource.org/licenses/mit-license.php

"""Polymorphic associations storing integer type codes for SQLAlchemy."""

import logging

from .attributes import polymorphic_collection as polymorphic_collection
from .attributes import polymorphic_reference as polymorphic_reference
from .attributes import PolymorphicCollection as PolymorphicCollection
from .attributes import PolymorphicExtensionType as PolymorphicExtensionType
from .attributes import PolymorphicReference as PolymorphicReference
from .attributes import reference_descriptor as reference_descriptor
from .attributes import ReferenceComparator as ReferenceComparator
from .config import roles_from_config as roles_from_config
from .descriptor import AssociationDescriptor as AssociationDescriptor
from .descriptor import ReferenceDirection as ReferenceDirection
from .exc import DuplicateCodeError as DuplicateCodeError
from .exc import DuplicateNameError as DuplicateNameError
from .exc import InconsistentNullityError as InconsistentNullityError
from .exc import PolymorphicTypeError as PolymorphicTypeError
from .exc import RegistryFrozenError as RegistryFrozenError
from .exc import UnknownCodeError as UnknownCodeError
from .exc import UnknownRoleError as UnknownRoleError
from .exc import UnknownTypeError as UnknownTypeError
from .naming import class_for_storage_name as class_for_storage_name
from .naming import storage_name_for as storage_name_for
from .naming import StorageNameMixin as StorageNameMixin
from .registry import add_participant as add_participant
from .registry import clear_roles as clear_roles
from .registry import configure_role as configure_role
from .registry import configure_roles as configure_roles
from .registry import role_registry as role_registry
from .registry import TypeRegistry as TypeRegistry
from .resolver import build_predicate as build_predicate
from .resolver import inverse_criterion as inverse_criterion
from .resolver import preload as preload
from .resolver import preload_references as preload_references
from .resolver import PreloadReferences as PreloadReferences
from .resolver import ReferenceLoader as ReferenceLoader
from .resolver import Resolver as Resolver
from .types import PolymorphicTypeCode as PolymorphicTypeCode


rootlogger = logging.getLogger("sqlalchemy_polyint")
if rootlogger.level == logging.NOTSET:
    rootlogger.setLevel(logging.WARN)

__version__ = "1.0.0"
