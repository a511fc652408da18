import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bizboost.database import Base


class Role(str, enum.Enum):
    GUEST = "guest"
    MEMBER = "member"


class User(Base):
    """
    One identity: either an ephemeral guest or a durable member.

    Design notes:
    - session_token is the opaque bearer credential (unique, NULL when signed out)
    - session_token and session_expires_at are always set or cleared together
    - guest_expires_at is the hard lifetime of a guest, independent of its session
    - username, email and google_id are unique; the database is the final
      arbiter when two requests race to create the same member
    - timestamps are naive UTC
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    role = Column(
        Enum(Role, name="user_role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        default=Role.GUEST,
    )

    # Credentials: none for guests, a password hash and/or a Google subject for members
    username = Column(String(64), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=True)
    google_id = Column(String(255), unique=True, nullable=True, index=True)

    name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)

    session_token = Column(String(128), unique=True, nullable=True, index=True)
    session_expires_at = Column(DateTime, nullable=True, index=True)
    guest_expires_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    favourites = relationship(
        "Favourite",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Favourite.id",
    )

    @property
    def is_guest(self) -> bool:
        return self.role == Role.GUEST

    @property
    def has_session(self) -> bool:
        return self.session_token is not None

    @property
    def favourite_ids(self):
        return [f.business_id for f in self.favourites]

    def __repr__(self):
        return f"<User(id={self.id}, role={self.role.value if self.role else None})>"


class Favourite(Base):
    """
    A business bookmarked by a member.

    Business ids are opaque strings owned by the listings service.
    """
    __tablename__ = "favourites"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    business_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="favourites")

    __table_args__ = (
        UniqueConstraint("user_id", "business_id", name="uq_favourite_user_business"),
        Index("ix_favourite_user", "user_id"),
    )

    def __repr__(self):
        return f"<Favourite(user_id={self.user_id}, business_id={self.business_id})>"
