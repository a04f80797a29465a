from __future__ import annotations

from ..extensions import db
from ledgerdesk.time_utils import isoformat_z


USER_ROLES = ("admin", "attendant")


class Currency(db.Model):
    __tablename__ = "currencies"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), nullable=False, unique=True)
    symbol = db.Column(db.String(8), nullable=False)
    name = db.Column(db.String(64), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "symbol": self.symbol,
            "name": self.name,
        }


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    currency = db.relationship("Currency")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "currency_id": self.currency_id,
            "is_active": self.is_active,
            "created_at": isoformat_z(self.created_at),
        }


class ProductCategory(db.Model):
    __tablename__ = "product_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


class User(db.Model):
    """
    Operator account.

    Only identity and role live here; password hashing and session storage
    belong to the desktop shell.
    """
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="attendant")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'attendant')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
        }
