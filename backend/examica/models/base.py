from sqlalchemy import Column, DateTime
from ..core.database import Base
from ..utils.timezone import utc_now


class BaseModel(Base):
    __abstract__ = True

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
