from sqlalchemy import Column, DateTime, LargeBinary, String, func

from quizlr.database import Base


class StoredObject(Base):
    __tablename__ = "stored_objects"

    key = Column(String(255), primary_key=True)
    data = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
