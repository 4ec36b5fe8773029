import argparse
from sqlalchemy.orm.session import Session

from cabhub.src import argon2
from cabhub.src.enums import UserRole, VehicleType
from cabhub.src.db import (
    Account,
    Company,
    CompanyVendorAssociation,
    Driver,
    Vehicle,
    Vendor,
    sessionMaker,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables(session: Session):
    ORMbase.metadata.drop_all(session.get_bind())
    session.commit()
    print("* All tables deleted")


def createTables(session: Session):
    ORMbase.metadata.create_all(session.get_bind())
    session.commit()
    print("* All tables created")


def initDB(session: Session):
    password = argon2.makePassword("password")

    companyAccount = Account(
        username="company",
        password=password,
        role=UserRole.COMPANY,
    )
    vendorAccount = Account(
        username="vendor",
        password=password,
        role=UserRole.VENDOR,
    )
    session.add_all([companyAccount, vendorAccount])
    session.flush()

    company = Company(
        account_id=companyAccount.id,
        name="Demo company",
        contact_person="Travel desk",
        phone="tel:+91-94968-01157",
        email="travel@cabhub.dev",
        address="Edava, Thiruvananthapuram, Kerala 695311",
    )
    vendor = Vendor(
        account_id=vendorAccount.id,
        name="Demo cabs",
        service_areas=["Thiruvananthapuram", "Kollam"],
        contact_person="Dispatcher",
        phone="tel:+91-94968-01158",
        email="dispatch@cabhub.dev",
    )
    session.add_all([company, vendor])
    session.flush()

    association = CompanyVendorAssociation(company_id=company.id, vendor_id=vendor.id)
    driver = Driver(
        vendor_id=vendor.id,
        name="Anil Kumar",
        phone="tel:+91-94968-01159",
        license_number="KL0120230001234",
        experience_years=8,
    )
    vehicle = Vehicle(
        vendor_id=vendor.id,
        registration_number="KL01AB1234",
        vehicle_type=VehicleType.SEDAN,
        make="Toyota",
        model="Etios",
        color="White",
        capacity=4,
    )
    session.add_all([association, driver, vehicle])
    session.commit()
    print("* Initialization completed")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()

    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    args = parser.parse_args()

    session = sessionMaker()
    try:
        if args.rm:
            removeTables(session)
        if args.cr:
            createTables(session)
        if args.init:
            initDB(session)
    finally:
        session.close()
