from loguru import logger
from sqlmodel import Session, select
from app.db.core import engine
from app.db.schema import User, UserRole, Product
from app.services.auth import AuthService


# 1. Demo accounts, one per role
DEMO_USERS = [
    {"email": "admin@qc.local", "name": "Ada Admin",
        "role": UserRole.ADMIN, "department": "Quality"},
    {"email": "manager@qc.local", "name": "Morgan Manager",
        "role": UserRole.MANAGER, "department": "Quality"},
    {"email": "inspector@qc.local", "name": "Ivan Inspector",
        "role": UserRole.INSPECTOR, "department": "Assembly Line 1"},
]

# 2. A small product catalogue to inspect against
DEMO_PRODUCTS = [
    {"name": "Aluminium Housing A12", "category": "enclosures"},
    {"name": "Drive Shaft DS-40", "category": "mechanical"},
    {"name": "Control Board CB-7", "category": "electronics"},
]


def seed_users(session: Session) -> list[User]:
    logger.info("--- Seeding Users ---")
    users = []

    for data in DEMO_USERS:
        user = session.exec(
            select(User).where(User.email == data["email"])).first()
        if not user:
            user = User(**data)
            session.add(user)
            session.flush()
            logger.info(f"Created User: {user.email} ({user.role.value})")
        else:
            logger.info(f"Existing User: {user.email}")
        users.append(user)

    return users


def seed_products(session: Session):
    logger.info("--- Seeding Products ---")

    for data in DEMO_PRODUCTS:
        product = session.exec(
            select(Product).where(Product.name == data["name"])).first()
        if not product:
            session.add(Product(**data))
            logger.info(f"Created Product: {data['name']}")
        else:
            logger.info(f"Existing Product: {data['name']}")


def main():
    # Tables are created by Alembic: `alembic upgrade head`
    with Session(engine) as session:
        try:
            users = seed_users(session)
            seed_products(session)
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Seeding failed: {e}")
            raise

        logger.info("--- Access tokens ---")
        for user in users:
            token = AuthService.create_access_token(user.id)
            logger.info(f"{user.email}: {token}")


if __name__ == "__main__":
    main()
