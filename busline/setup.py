import argparse

from busline.src import argon2
from busline.src.enums import AccountRole, AccountStatus
from busline.src.db import Account, sessionMaker, engine, ORMbase


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    ORMbase.metadata.drop_all(engine)
    print("* All tables deleted")


def createTables():
    ORMbase.metadata.create_all(engine)
    print("* All tables created")


def createAdmin(username: str, password: str) -> Account:
    """
    Create an admin account, or reset the password of an existing one.
    Resetting the password revokes the tokens issued before.
    """
    session = sessionMaker()
    try:
        admin = session.query(Account).filter(Account.username == username).first()
        if admin is None:
            admin = Account(
                role=AccountRole.ADMIN,
                username=username,
                password=argon2.makePassword(password),
                full_name="Busline admin",
            )
            session.add(admin)
            print(f"* Created admin account {username}")
        else:
            admin.role = AccountRole.ADMIN
            admin.status = AccountStatus.ACTIVE
            admin.password = argon2.makePassword(password)
            admin.credential_version += 1
            print(f"* Reset admin account {username}")
        session.commit()
        session.refresh(admin)
        return admin
    finally:
        session.close()


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("-drop", action="store_true", help="remove tables")
    parser.add_argument("-init", action="store_true", help="create tables")
    parser.add_argument(
        "-admin",
        nargs=2,
        metavar=("USERNAME", "PASSWORD"),
        help="create an admin account or reset its password",
    )
    args = parser.parse_args()

    if args.drop:
        removeTables()
    if args.init:
        createTables()
    if args.admin:
        createAdmin(*args.admin)
