from sqlalchemy import inspect
from sqlalchemy import Integer
from sqlalchemy import select
from sqlalchemy.orm import configure_mappers
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import selectinload
from sqlalchemy.testing import assert_raises_message
from sqlalchemy.testing import eq_
from sqlalchemy.testing import is_
from sqlalchemy.testing import is_none

from sqlalchemy_polyint import clear_roles
from sqlalchemy_polyint import configure_role
from sqlalchemy_polyint import inverse_criterion
from sqlalchemy_polyint import polymorphic_collection
from sqlalchemy_polyint import polymorphic_reference
from sqlalchemy_polyint import PolymorphicTypeCode
from sqlalchemy_polyint import ReferenceDirection
from sqlalchemy_polyint import UnknownTypeError
from test.orm import _fixtures


class CollectionTest(_fixtures.LinkFixture):
    def test_create_through_collection(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()

        link = Link()
        cat.source_links.append(link)
        eq_(link.source_type, "Animal")
        eq_(link.source_id, cat.id)
        self.session.commit()

        eq_(link.source_id, cat.id)
        eq_(link.source_type, "Animal")
        is_(link.source, cat)
        is_(cat.source_links[0].source, cat)

    def test_create_through_collection_pending_parent(self):
        Link, Animal = self.classes.Link, self.classes.Animal

        cat = Animal(name="tom")
        link = Link()
        cat.source_links.append(link)
        is_none(link.source_id)
        eq_(link.source_type, "Animal")

        self.session.add(cat)
        self.session.commit()

        eq_(link.source_id, cat.id)
        is_(link.source, cat)

    def test_subclass_appends_base_name(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()

        link = Link()
        dog.source_links.append(link)
        self.session.commit()

        eq_(link.source_type, "Animal")
        is_(link.source, dog)
        eq_(dog.source_links, [link])
        eq_(cat.source_links, [])

    def test_remove_from_collection(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()

        link = Link(source=cat)
        self.session.add(link)
        self.session.commit()

        cat.source_links.remove(link)
        is_none(link.source_type)
        self.session.commit()

        is_none(link.source_id)
        is_none(link.source_type)
        is_none(link.source)
        eq_(cat.source_links, [])

    def test_collection_filters_on_type(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()

        # a person and an animal sharing a primary key value
        eq_(person.id, cat.id)
        person_link = Link(source=person)
        cat_link = Link(source=cat)
        self.session.add_all([person_link, cat_link])
        self.session.commit()

        eq_(person.source_links, [person_link])
        eq_(cat.source_links, [cat_link])

    def test_forward_and_inverse_agree(self):
        Link = self.classes.Link
        person, cat, dog, kibble, water, whiskey = self._fixture()

        l1 = Link(source=cat, target=water)
        l2 = Link(source=person, target=water)
        l3 = Link(source=cat, target=whiskey)
        self.session.add_all([l1, l2, l3])
        self.session.commit()

        for target in (water, whiskey):
            for link in target.target_links:
                is_(link.target, target)
        eq_(cat.source_links, [l1, l3])
        eq_(water.target_links, [l1, l2])

        eq_(
            self.session.scalars(
                select(Link)
                .where(inverse_criterion(Link.source.descriptor, cat))
                .order_by(Link.id)
            ).all(),
            cat.source_links,
        )

    def test_selectinload_through(self):
        Link, Person, Animal = (
            self.classes.Link,
            self.classes.Person,
            self.classes.Animal,
        )
        person, cat, dog, kibble, water, whiskey = self._fixture()
        self.session.add_all(
            [
                Link(source=cat, target=kibble),
                Link(source=dog, target=water),
                Link(source=dog, target=whiskey),
            ]
        )
        self.session.commit()
        person_id = person.id
        self.session.close()

        def go():
            return self.session.scalars(
                select(Person)
                .where(Person.id == person_id)
                .options(
                    selectinload(Person.pets).selectinload(
                        Animal.source_links
                    )
                )
            ).one()

        # persons, animals, links
        owner = self.assert_sql_count(go, 3)

        def links():
            return [
                link for pet in owner.pets for link in pet.source_links
            ]

        pet_links = self.assert_sql_count(links, 0)
        eq_(
            [link.source.name for link in pet_links],
            ["tabby", "rover", "rover"],
        )

        # one SELECT for foods, one for drinks
        targets = self.assert_sql_count(
            lambda: Link.target.preload(self.session, pet_links), 2
        )
        eq_([t.name for t in targets], ["kibble", "water", "whiskey"])

    def test_participants_recorded(self):
        Animal = self.classes.Animal
        from sqlalchemy_polyint.registry import _roles

        eq_(_roles.participants["source"], {"Person", "Animal"})
        eq_(_roles.participants["target"], {"Food", "Drink"})
        is_(Animal.source_links.property.mapper.class_, self.classes.Link)

    def test_inverse_descriptor(self):
        Link, Animal = self.classes.Link, self.classes.Animal

        inverse = Link.source.descriptor.inverse(Animal, "source_links")
        is_(inverse.direction, ReferenceDirection.ONETOMANY)
        is_(inverse.parent, Animal)
        is_(inverse.owner, Link)
        eq_(str(inverse), "Animal.source_links")


class CollectionConfigTest:
    def setup_method(self):
        class Base(DeclarativeBase):
            pass

        self.Base = Base

    def teardown_method(self):
        clear_roles()
        self.Base.registry.dispose()

    def _link(self, **type_kw):
        class Link(self.Base):
            __tablename__ = "links"

            id = mapped_column(Integer, primary_key=True)
            source_id = mapped_column(Integer)
            source_type = mapped_column(PolymorphicTypeCode(**type_kw))
            target_id = mapped_column(Integer)
            target_type = mapped_column(PolymorphicTypeCode(role="target"))

            source = polymorphic_reference()
            target = polymorphic_reference()

        return Link

    def _plant(self):
        class Plant(self.Base):
            __tablename__ = "plants"

            id = mapped_column(Integer, primary_key=True)

            source_links = polymorphic_collection("Link", "source")

        return Plant

    def test_class_missing_from_role_table(self):
        configure_role("source", {1: "Person", 2: "Animal"})
        self._link(role="source")
        self._plant()

        assert_raises_message(
            UnknownTypeError,
            "Type 'Plant' has no type code in role 'source'",
            configure_mappers,
        )

    def test_class_missing_from_local_table(self):
        self._link(table={1: "Person", 2: "Animal"})
        self._plant()

        assert_raises_message(
            UnknownTypeError,
            "Type 'Plant' has no type code in code table",
            configure_mappers,
        )

    def test_declared_role_missing_from_table(self):
        configure_role("source", {1: "Person"})

        class Plant(self.Base):
            __tablename__ = "plants"
            __polymorphic_roles__ = ("source",)

            id = mapped_column(Integer, primary_key=True)

        assert_raises_message(
            UnknownTypeError,
            "Type 'Plant' has no type code in role 'source'",
            configure_mappers,
        )

    def test_overlaps_limited_to_same_reference(self):
        self._link(role="source")

        class Person(self.Base):
            __tablename__ = "people"

            id = mapped_column(Integer, primary_key=True)

            source_links = polymorphic_collection("Link", "source")

        class Animal(self.Base):
            __tablename__ = "animals"

            id = mapped_column(Integer, primary_key=True)

            links = polymorphic_collection("Link", "source")

        class Food(self.Base):
            __tablename__ = "foods"

            id = mapped_column(Integer, primary_key=True)

            target_links = polymorphic_collection("Link", "target")

        configure_mappers()

        person_rel = inspect(Person).relationships["source_links"]
        animal_rel = inspect(Animal).relationships["links"]
        food_rel = inspect(Food).relationships["target_links"]

        # the collection configured second names the first
        eq_(
            set(person_rel._overlaps) | set(animal_rel._overlaps),
            {"links", "source_links"},
        )
        eq_(set(food_rel._overlaps), {"target_links"})
