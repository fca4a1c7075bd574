from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from machinebio.core.db import Base


class Make(Base):
    __tablename__ = "makes"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    models = relationship("CarModel", back_populates="make")


class CarModel(Base):
    __tablename__ = "car_models"
    __table_args__ = (UniqueConstraint("make_id", "slug"),)
    id = Column(Integer, primary_key=True, index=True)
    make_id = Column(Integer, ForeignKey("makes.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    make = relationship("Make", back_populates="models")
    generations = relationship("Generation", back_populates="model")


class Generation(Base):
    __tablename__ = "generations"
    id = Column(Integer, primary_key=True, index=True)
    model_id = Column(Integer, ForeignKey("car_models.id"), nullable=False, index=True)
    name = Column(String, nullable=False)  # chassis code, e.g. 'A80'
    display_name = Column(String, nullable=True)
    model = relationship("CarModel", back_populates="generations")
