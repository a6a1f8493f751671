"""Type codes derived from the classes taking part in a role.

No code table is configured for the "addressable" role here; the classes
declaring a collection against it are numbered alphabetically when the
role is first used.  Adding or renaming a participant renumbers the
codes, so this is only suited to data that is recreated along with the
schema.

"""
from sqlalchemy import create_engine
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import Session
from sqlalchemy_polyint import configure_roles
from sqlalchemy_polyint import polymorphic_collection
from sqlalchemy_polyint import polymorphic_reference
from sqlalchemy_polyint import PolymorphicTypeCode
from sqlalchemy_polyint import role_registry


class Base(DeclarativeBase):
    pass


class Address(Base):
    __tablename__ = "address"

    id = mapped_column(Integer, primary_key=True)
    street = mapped_column(String)
    parent_id = mapped_column(Integer)
    parent_type = mapped_column(PolymorphicTypeCode(role="addressable"))

    parent = polymorphic_reference()


class Supplier(Base):
    __tablename__ = "supplier"

    id = mapped_column(Integer, primary_key=True)
    company_name = mapped_column(String)

    addresses = polymorphic_collection("Address", "parent")


class Customer(Base):
    __tablename__ = "customer"

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String)

    addresses = polymorphic_collection("Address", "parent")


class Warehouse(Base):
    __tablename__ = "warehouse"
    __polymorphic_roles__ = ("addressable",)

    id = mapped_column(Integer, primary_key=True)


configure_roles()

# {1: 'Customer', 2: 'Supplier', 3: 'Warehouse'}
print(dict(role_registry("addressable").all_mappings()))

engine = create_engine("sqlite://")
Base.metadata.create_all(engine)

with Session(engine) as session:
    supplier = Supplier(company_name="Ace Hammers")
    session.add(supplier)
    session.flush()
    session.add(Address(street="2569 west elm", parent=supplier))
    session.commit()

    print(
        session.execute(
            text("SELECT parent_id, parent_type FROM address")
        ).all()
    )
