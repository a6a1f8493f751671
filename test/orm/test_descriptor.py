from sqlalchemy import exc as sa_exc
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import mapped_column
from sqlalchemy.testing import assert_raises
from sqlalchemy.testing import assert_raises_message
from sqlalchemy.testing import eq_
from sqlalchemy.testing import is_

from sqlalchemy_polyint import AssociationDescriptor
from sqlalchemy_polyint import InconsistentNullityError
from sqlalchemy_polyint import polymorphic_reference
from sqlalchemy_polyint import PolymorphicTypeCode
from sqlalchemy_polyint import UnknownCodeError
from sqlalchemy_polyint import UnknownTypeError
from test.orm import _fixtures


class DescriptorTest(_fixtures.LinkFixture):
    def test_encode_reference(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()
        d = Link.source.descriptor

        eq_(d.encode_reference(cat), (cat.id, 2))
        eq_(d.encode_reference(dog), (dog.id, 2))
        eq_(d.encode_reference(person), (person.id, 1))
        eq_(d.encode_reference((7, "Person")), (7, 1))
        eq_(d.encode_reference(None), (None, None))

    def test_encode_reference_unknown(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()
        d = Link.source.descriptor

        assert_raises(UnknownTypeError, d.encode_reference, kibble)
        assert_raises(UnknownTypeError, d.encode_reference, (1, "Food"))

    def test_encode_reference_partial(self):
        d = self.classes.Link.source.descriptor

        assert_raises(InconsistentNullityError, d.encode_reference, (1, None))
        assert_raises(
            InconsistentNullityError, d.encode_reference, (None, "Person")
        )
        assert_raises_message(
            sa_exc.ArgumentError,
            r"Expected an \(id, type name\) pair",
            d.encode_reference,
            (1, "Person", "extra"),
        )

    def test_decode_reference(self):
        d = self.classes.Link.source.descriptor

        eq_(d.decode_reference(5, 2), (5, "Animal"))
        eq_(d.decode_reference(None, None), (None, None))
        assert_raises(InconsistentNullityError, d.decode_reference, 5, None)
        assert_raises(InconsistentNullityError, d.decode_reference, None, 2)
        assert_raises(UnknownCodeError, d.decode_reference, 5, 9)

    def test_class_for(self):
        Link, Animal, Person = (
            self.classes.Link,
            self.classes.Animal,
            self.classes.Person,
        )
        d = Link.source.descriptor

        is_(d.class_for("Animal"), Animal)
        is_(d.class_for("Person"), Person)

    def test_criterion(self):
        Link = self.classes.Link
        d = Link.source.descriptor

        eq_(
            str(d.criterion(5, "Animal")),
            "links.source_id = :source_id_1 "
            "AND links.source_type = :source_type_1",
        )
        eq_(
            str(d.criterion(None, None)),
            "links.source_id IS NULL AND links.source_type IS NULL",
        )

    def test_repr(self):
        d = self.classes.Link.source.descriptor

        eq_(
            repr(d),
            "<AssociationDescriptor Link.source "
            "(Link.source_id, Link.source_type) MANYTOONE>",
        )


class DescriptorConfigTest:
    def setup_method(self):
        class Base(DeclarativeBase):
            pass

        self.Base = Base

    def teardown_method(self):
        self.Base.registry.dispose()

    def test_requires_type_code_column(self):
        class Link(self.Base):
            __tablename__ = "links"

            id = mapped_column(Integer, primary_key=True)
            source_id = mapped_column(Integer)
            source_type = mapped_column(String(50))

        assert_raises_message(
            sa_exc.ArgumentError,
            "Column Link.source_type of polymorphic reference 'source' must "
            "be of type PolymorphicTypeCode",
            AssociationDescriptor.for_mapped_class,
            Link,
            "source",
            "source_id",
            "source_type",
        )

    def test_requires_columns(self):
        class Link(self.Base):
            __tablename__ = "links"

            id = mapped_column(Integer, primary_key=True)
            source_type = mapped_column(PolymorphicTypeCode(table={1: "A"}))

        assert_raises_message(
            sa_exc.ArgumentError,
            "Polymorphic reference Link.source requires a mapped column "
            "attribute 'source_id'",
            AssociationDescriptor.for_mapped_class,
            Link,
            "source",
            "source_id",
            "source_type",
        )

    def test_custom_attribute_names(self):
        class Link(self.Base):
            __tablename__ = "links"

            id = mapped_column(Integer, primary_key=True)
            src = mapped_column(Integer)
            src_code = mapped_column(PolymorphicTypeCode(table={1: "Link"}))

            source = polymorphic_reference("src", "src_code")

        link = Link(id=4)
        other = Link(source=link)

        eq_(other.src, 4)
        eq_(other.src_code, "Link")
        is_(other.source, link)

    def test_composite_primary_key_target(self):
        class Pair(self.Base):
            __tablename__ = "pairs"

            a = mapped_column(Integer, primary_key=True)
            b = mapped_column(Integer, primary_key=True)

        class Link(self.Base):
            __tablename__ = "links"

            id = mapped_column(Integer, primary_key=True)
            source_id = mapped_column(Integer)
            source_type = mapped_column(PolymorphicTypeCode(table={1: "Pair"}))

            source = polymorphic_reference()

        assert_raises_message(
            sa_exc.ArgumentError,
            "composite primary key",
            Link,
            source=Pair(a=1, b=2),
        )
