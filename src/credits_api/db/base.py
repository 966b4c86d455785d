from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for ledger, gift card, order and audit tables.

    Every model names its table and constraints explicitly so the Alembic
    revision and ``metadata.create_all`` agree on identifiers.
    """
