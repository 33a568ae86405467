"""Deletion markers propagated to the sync server."""
from typing import Optional

from sqlmodel import Field, SQLModel

# Entity kinds a tombstone may refer to; values are local table names
KIND_RECORD = "logbook"
KIND_LICENSE = "licensing"
KIND_ATTACHMENT = "attachments"

ENTITY_KINDS = (KIND_RECORD, KIND_LICENSE, KIND_ATTACHMENT)


class DeletedItem(SQLModel, table=True):
    """
    A tombstone: the entity `id` of kind `entity_kind` was deleted.

    Kept until it has been pushed to the server successfully. `delete_time`
    is Unix seconds as a string, which is how it travels on the wire.
    """

    __tablename__ = "deleted_items"

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True)
    entity_kind: str
    delete_time: str
