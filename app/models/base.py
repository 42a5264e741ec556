# ================================
# BASE MODEL (models/base.py)
# ================================

from sqlalchemy import Column, DateTime, Enum, Uuid, func
from sqlalchemy.orm import as_declarative, declared_attr
import uuid

@as_declarative()
class Base:
    """Base Model mit gemeinsamen Feldern und Funktionalität"""

    # Automatische Tabellennamen basierend auf Klassennamen
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower() + "s"

    # Gemeinsame Spalten
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

class OwnerMixin:
    """Mixin für Owner-Referenz (Benutzer liegen beim Auth-Dienst)"""

    @declared_attr
    def owner_id(cls):
        return Column(Uuid, nullable=False, index=True)

def enum_column(enum_cls, **kwargs) -> Column:
    """String-backed enum column storing the member values"""
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=32,
            validate_strings=True,
            values_callable=lambda members: [member.value for member in members]
        ),
        **kwargs
    )
