"""
User identity mirror.

Authentication and session issuance live outside the engine; this table only
exists so bookings and vouchers can reference their owners by foreign key.
"""

from sqlalchemy import Column, String
import ulid

from ..core.enums import RoleName
from ..database import Base
from .types import UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=True)
    email = Column(String(320), nullable=True, unique=True)
    role = Column(String(20), nullable=False, default=RoleName.USER.value)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User {self.id} role={self.role}>"

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN.value
