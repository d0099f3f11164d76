from typing import Union
from uuid import UUID

from sqlalchemy.orm import Session


def as_uuid(value: Union[str, UUID]) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


class Repository:
    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    def save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj
