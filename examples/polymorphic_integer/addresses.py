"""A "generic foreign key" whose discriminator is an integer code.

The ``parent_type`` column is an INTEGER; the code table for the
"addressable" role maps the codes to class names, so that application
code deals in names while the database stores small integers that are
unaffected by class renames.

"""
from sqlalchemy import create_engine
from sqlalchemy import Integer
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import Session
from sqlalchemy_polyint import configure_role
from sqlalchemy_polyint import configure_roles
from sqlalchemy_polyint import polymorphic_collection
from sqlalchemy_polyint import polymorphic_reference
from sqlalchemy_polyint import PolymorphicTypeCode
from sqlalchemy_polyint import preload_references
from sqlalchemy_polyint import ReferenceLoader


configure_role("addressable", {1: "Customer", 2: "Supplier"})


class Base(DeclarativeBase):
    pass


class Address(Base):
    __tablename__ = "address"

    id = mapped_column(Integer, primary_key=True)
    street = mapped_column(String)
    city = mapped_column(String)
    zip = mapped_column(String)

    parent_id = mapped_column(Integer)
    """Refers to the primary key of the parent.

    This could refer to any table.
    """

    parent_type = mapped_column(PolymorphicTypeCode(role="addressable"))
    """Refers to the type of parent, stored as an integer code."""

    parent = polymorphic_reference()

    def __repr__(self):
        return "%s(street=%r, city=%r, zip=%r)" % (
            self.__class__.__name__,
            self.street,
            self.city,
            self.zip,
        )


class Customer(Base):
    __tablename__ = "customer"

    id = mapped_column(Integer, primary_key=True)
    name = mapped_column(String)

    addresses = polymorphic_collection(Address, "parent")


class Supplier(Base):
    __tablename__ = "supplier"

    id = mapped_column(Integer, primary_key=True)
    company_name = mapped_column(String)

    addresses = polymorphic_collection(Address, "parent")


configure_roles()

engine = create_engine("sqlite://", echo=True)
Base.metadata.create_all(engine)

ReferenceLoader(echo=True).listen_on_session(Session)

session = Session(engine)

session.add_all(
    [
        Customer(
            name="customer 1",
            addresses=[
                Address(
                    street="123 anywhere street", city="New York", zip="10110"
                ),
                Address(
                    street="40 main street", city="San Francisco", zip="95732"
                ),
            ],
        ),
        Supplier(
            company_name="Ace Hammers",
            addresses=[
                Address(street="2569 west elm", city="Detroit", zip="56785")
            ],
        ),
    ]
)

session.commit()

for customer in session.scalars(select(Customer)):
    for address in customer.addresses:
        print(address)
        print(address.parent)

# one SELECT for the addresses, then one per parent type
for address in session.scalars(
    select(Address).options(preload_references("parent"))
):
    print(address.parent_type, address.parent)

print(session.scalars(select(Address).where(Address.parent == customer)).all())
