from sqlalchemy import Column, Text
from doctrack.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    name = Column(Text)
    email = Column(Text)
    role = Column(Text, nullable=False, default="user")
    created_at = Column(Text, nullable=False)
