"""
User profile database model.

Profiles are keyed by the identity provider's uid; the provider owns the
credentials, this table only records role and student details.
"""

from sqlalchemy import Column, String, BigInteger
from bustrack.app.db.session import Base


class User(Base):
    """
    User profile for role resolution.

    Timestamps are epoch milliseconds, matching the values clients display.
    """
    __tablename__ = "users"

    id = Column(String(128), primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=True)
    name = Column(String(255), nullable=True)

    # "student" | "driver"; empty until resolved
    user_type = Column(String(20), nullable=True)

    # Student details extracted from the institutional email
    roll_number = Column(String(5), nullable=True)
    batch_year = Column(String(2), nullable=True)
    full_batch = Column(String(4), nullable=True)

    created_at = Column(BigInteger, nullable=True)
    last_login = Column(BigInteger, nullable=True)

    def __repr__(self):
        return f"<User(id='{self.id}', email='{self.email}', user_type='{self.user_type}')>"
