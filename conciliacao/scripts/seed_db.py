# conciliacao/scripts/seed_db.py
"""
Seeds a development database with one organization, store, bank account and
admin user so OFX files can be imported right away. Safe to run repeatedly.

    python -m conciliacao.scripts.seed_db
"""
import os
import traceback

from dotenv import load_dotenv

from conciliacao.database import Base, SessionLocal, engine
from conciliacao.constants import BankAccountType, UserRole
from conciliacao.core.hashing import get_password_hash
import conciliacao.models as models

load_dotenv()

SEED_ORG_NAME = os.getenv("SEED_ORG_NAME", "Vitaliano")
SEED_STORE_NAME = os.getenv("SEED_STORE_NAME", "Loja Centro")
SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.com")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")


def seed_db():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        print("Starting database seeding (idempotent mode)...")

        org = db.query(models.Organization).filter(models.Organization.name == SEED_ORG_NAME).first()
        if not org:
            org = models.Organization(name=SEED_ORG_NAME)
            db.add(org)
            db.flush()
            print(f"  Added organization: {SEED_ORG_NAME}")
        else:
            print(f"  Organization '{SEED_ORG_NAME}' already exists.")

        store = db.query(models.Store).filter(models.Store.org_id == org.id, models.Store.name == SEED_STORE_NAME).first()
        if not store:
            store = models.Store(org_id=org.id, name=SEED_STORE_NAME, code="CTR")
            db.add(store)
            db.flush()
            print(f"  Added store: {SEED_STORE_NAME}")

        account = db.query(models.BankAccount).filter(models.BankAccount.store_id == store.id).first()
        if not account:
            account = models.BankAccount(
                org_id=org.id,
                store_id=store.id,
                name="Conta Movimento",
                bank_name="Itau",
                agency="0001",
                account_number="12345-6",
                account_type=BankAccountType.CHECKING,
            )
            db.add(account)
            print("  Added bank account: Conta Movimento")

        admin = db.query(models.User).filter(models.User.email == SEED_ADMIN_EMAIL.lower()).first()
        if not admin:
            db.add(models.User(
                email=SEED_ADMIN_EMAIL.lower(),
                password_hash=get_password_hash(SEED_ADMIN_PASSWORD),
                full_name="Administrator",
                role=UserRole.ADMIN,
                org_id=org.id,
            ))
            print(f"  Added admin user: {SEED_ADMIN_EMAIL}")
        else:
            print(f"  Admin user '{SEED_ADMIN_EMAIL}' already exists.")

        db.commit()
        print("\nDatabase seeding complete!")
    except Exception as e:
        db.rollback()
        print(f"FATAL ERROR during seeding: {e}")
        traceback.print_exc()
    finally:
        db.close()


if __name__ == "__main__":
    seed_db()
