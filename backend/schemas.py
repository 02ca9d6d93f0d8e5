"""
Wire format shared by the routers: camelCase in both directions, aware
UTC timestamps out.
"""
from datetime import datetime

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel

from clock import as_utc


class CamelModel(BaseModel):
    """Request body; accepts camelCase keys and, for older clients, snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def to_api(record: SQLModel, **extra) -> dict:
    """Row fields plus any derived values, keyed in camelCase."""
    data = record.model_dump()
    data.update(extra)
    return jsonable_encoder({
        to_camel(key): as_utc(value) if isinstance(value, datetime) else value
        for key, value in data.items()
    })
