import datetime as dt
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class StoredModel(BaseModel):
    """Base for records persisted as rows in the message store."""
    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
        extra='ignore'
    )

    def to_row(self) -> dict:
        return self.model_dump()

    @classmethod
    def from_row(cls, row: dict):
        # Stores may add their own keys (e.g. Mongo's _id)
        return cls.model_validate({k: v for k, v in row.items() if k in cls.model_fields})


class PayloadModel(BaseModel):
    """
    Base for message payloads.
    Accepts both snake_case and the camelCase keys emitted by the web frontend.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore'
    )
