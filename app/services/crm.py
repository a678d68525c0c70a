from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Customer
from app.models.base import new_id
from app.utils.time import utcnow


def split_name(full_name: str) -> tuple[str, str]:
    """First token is the first name, the remainder is the last name."""
    parts = full_name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CRMService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_customer(self, *, tenant_id: str, email: str) -> Customer | None:
        stmt = select(Customer).where(Customer.tenant_id == tenant_id, Customer.email == normalize_email(email))
        return self.session.scalars(stmt).first()

    def upsert_customer(
        self,
        *,
        tenant_id: str,
        email: str,
        name: str,
        phone: str | None = None,
        marketing_consent: bool | None = None,
    ) -> Customer:
        first_name, last_name = split_name(name)
        email = normalize_email(email)
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return self._upsert_read_then_write(
                tenant_id=tenant_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                marketing_consent=marketing_consent,
            )

        now = utcnow()
        stmt = insert(Customer).values(
            id=new_id(),
            tenant_id=tenant_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            marketing_consent=bool(marketing_consent),
            status="active",
            source="online",
            created_at=now,
            updated_at=now,
        )
        updates = {
            "first_name": stmt.excluded.first_name,
            "last_name": stmt.excluded.last_name,
            "phone": stmt.excluded.phone,
            "updated_at": stmt.excluded.updated_at,
        }
        if marketing_consent is not None:
            updates["marketing_consent"] = stmt.excluded.marketing_consent
        stmt = stmt.on_conflict_do_update(index_elements=["tenant_id", "email"], set_=updates).returning(
            Customer.id, Customer.created_at
        )

        customer_id, created_at = self.session.execute(stmt).one()
        customer = self.session.scalars(
            select(Customer).where(Customer.id == customer_id).execution_options(populate_existing=True)
        ).one()
        if created_at == now:
            logger.info("Created customer id={customer_id} tenant={tenant_id}", customer_id=customer_id, tenant_id=tenant_id)
        else:
            logger.info("Updated existing customer id={customer_id}", customer_id=customer_id)
        return customer

    def _upsert_read_then_write(
        self,
        *,
        tenant_id: str,
        email: str,
        first_name: str,
        last_name: str,
        phone: str | None,
        marketing_consent: bool | None,
    ) -> Customer:
        existing = self.find_customer(tenant_id=tenant_id, email=email)
        if existing:
            existing.first_name = first_name
            existing.last_name = last_name
            existing.phone = phone
            if marketing_consent is not None:
                existing.marketing_consent = marketing_consent
            self.session.flush()
            logger.info("Updated existing customer id={customer_id}", customer_id=existing.id)
            return existing

        customer = Customer(
            tenant_id=tenant_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            marketing_consent=bool(marketing_consent),
            status="active",
            source="online",
        )
        self.session.add(customer)
        self.session.flush()
        logger.info("Created customer id={customer_id} tenant={tenant_id}", customer_id=customer.id, tenant_id=tenant_id)
        return customer
