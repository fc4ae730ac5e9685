from __future__ import annotations
from datetime import datetime, timezone, timedelta
from typing import Optional
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, Text, ForeignKey, DateTime, func

from repairshop.constants.roles import ROLE_CUSTOMER

Base = declarative_base()


class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    address: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_CUSTOMER, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Hash of the pending one-time code, cleared after a successful verification
    otp_code: Mapped[Optional[str]] = mapped_column(String(255))
    otp_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    customer = relationship('Customer', back_populates='user', uselist=False)

    def set_otp(self, raw: str, ttl_minutes: int):
        from werkzeug.security import generate_password_hash
        self.otp_code = generate_password_hash(raw)
        self.otp_expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)

    def otp_matches(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        if not self.otp_code:
            return False
        return check_password_hash(self.otp_code, raw)

    def otp_expired(self, now: Optional[datetime] = None) -> bool:
        if self.otp_expires_at is None:
            return False
        expires = self.otp_expires_at
        if expires.tzinfo is None:
            # SQLite drops tzinfo on the way back
            expires = expires.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) > expires

    def clear_otp(self):
        self.otp_code = None
        self.otp_expires_at = None


class Customer(Base):
    __tablename__ = 'customers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # unique: at most one Customer per User, enforced by the database for the upsert
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), unique=True, nullable=False, index=True)
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(80))
    state: Mapped[Optional[str]] = mapped_column(String(80))
    zip_code: Mapped[Optional[str]] = mapped_column(String(16))
    device_preferences: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship('User', back_populates='customer')

    PROFILE_FIELDS = ('address', 'city', 'state', 'zip_code', 'device_preferences', 'notes')
