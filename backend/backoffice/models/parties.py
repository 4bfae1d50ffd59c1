from __future__ import annotations

from ..extensions import db


def person_or_company_name(company_name: str | None, *person_names: str | None) -> str:
    if company_name and company_name.strip():
        return company_name.strip()
    joined = " ".join(part.strip() for part in person_names if part and part.strip())
    return joined or "N/A"


class User(db.Model):
    """
    Cashier / staff member referenced by sales and collections.

    Login and permissions are handled outside this service; only the
    identity needed for report filters lives here.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_type = db.Column(db.String(16), nullable=False, default="individual")  # individual | company

    first_name = db.Column(db.String(64), nullable=True)
    other_names = db.Column(db.String(64), nullable=True)
    surname = db.Column(db.String(64), nullable=True)
    company_name = db.Column(db.String(128), nullable=True)

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    @property
    def display_name(self) -> str:
        if self.customer_type == "individual":
            return person_or_company_name(None, self.first_name, self.other_names, self.surname)
        return person_or_company_name(self.company_name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.display_name,
            "type": self.customer_type,
            "email": self.email,
            "phone": self.phone,
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_name = db.Column(db.String(128), nullable=True)
    first_name = db.Column(db.String(64), nullable=True)
    surname = db.Column(db.String(64), nullable=True)

    @property
    def display_name(self) -> str:
        return person_or_company_name(self.company_name, self.first_name, self.surname)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.display_name}
