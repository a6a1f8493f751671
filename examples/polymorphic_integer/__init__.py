"""
Illustrates polymorphic associations whose type column stores an integer
code rather than a class name.

Each script presents the same use case as the "generic foreign key"
recipe: two classes, ``Customer`` and ``Supplier``, both having a
collection of ``Address`` objects, with each ``Address`` referring back
to its parent through a ``parent_id`` / ``parent_type`` column pair.

:viewsource:`.addresses` uses a code table configured for a role, and
loads parents lazily and in batches.  :viewsource:`.derived_codes` lets
the codes be derived from the participating classes.

.. autosource::

"""
