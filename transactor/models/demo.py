"""Minimal models exercised by the demo scenarios and the test-suite."""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from transactor.core.extensions import db

from .base import PKMixin, ReprMixin


class User(PKMixin, ReprMixin, db.Model):
    """A named user with an optional age."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Guest(PKMixin, ReprMixin, db.Model):
    """A visitor; only a name is required."""

    __tablename__ = "guests"

    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Product(PKMixin, ReprMixin, db.Model):
    """A product priced in cents."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
