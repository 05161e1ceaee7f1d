from sqlalchemy import Column, String, Boolean
from .base import BaseModel

ROLE_STUDENT = "student"
ROLE_EXAMINER = "examiner"
ROLE_ADMIN = "admin"

STAFF_ROLES = (ROLE_EXAMINER, ROLE_ADMIN)


class User(BaseModel):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, index=True)
    role = Column(String, default=ROLE_STUDENT, nullable=False)
    is_active = Column(Boolean, default=True)
    # Object key of the reference photo in the face reference bucket
    face_image_key = Column(String, nullable=True)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
