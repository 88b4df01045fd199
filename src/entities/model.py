import dataclasses
import enum
import threading

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


class BaseModel(PydanticBaseModel):
    model_config = ConfigDict(frozen=True)

    def dict(self, *args, **kwargs) -> dict:  # noqa: ANN101, ANN003, ANN002
        """Plain dict of the model, used for structured log fields."""
        return self.model_dump(*args, **kwargs)


def json_default(o: object) -> str | dict | list:
    if isinstance(o, PydanticBaseModel):
        return o.model_dump()
    elif dataclasses.is_dataclass(o) and not isinstance(o, type):
        return {f.name: getattr(o, f.name) for f in dataclasses.fields(o)}
    elif isinstance(o, enum.Enum):
        return o.value
    elif isinstance(o, (frozenset, set, tuple)):
        return list(o)
    elif isinstance(o, threading.Event):
        return "set" if o.is_set() else "clear"
    return str(o)
