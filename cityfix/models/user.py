from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base
from pydantic import BaseModel, EmailStr, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional
from enum import Enum


# -------------------------------
# SQLAlchemy ORM Model
# -------------------------------
class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100))
    photo = Column(String(1024))
    role = Column(String(50), nullable=False, default="citizen")
    status = Column(String(50), nullable=False, default="active")
    premium = Column(Boolean, nullable=False, default=False)
    # Issues currently held by the user; the quota guard's atomic counter
    issue_count = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP, server_default=func.now())

    issues = relationship("Issue", back_populates="reporter")

    @property
    def is_blocked(self) -> bool:
        return self.status == AccountStatus.BLOCKED.value


# -------------------------------
# Pydantic Schemas (for FastAPI)
# -------------------------------

# -------- Enums --------
class Role(str, Enum):
    CITIZEN = "citizen"
    STAFF = "staff"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


# -------- Requests --------
class UserCreateRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photo: Optional[str] = None
    role: Optional[Role] = Role.CITIZEN


class TokenRequest(BaseModel):
    email: EmailStr


# -------- Responses --------
class UserResponse(BaseModel):
    email: str
    name: Optional[str] = None
    photo: Optional[str] = None
    role: str
    status: str
    premium: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class UserExistsResponse(BaseModel):
    message: str


class TokenResponse(BaseModel):
    token: str
