from . import aws
from .model import BaseModel, json_default

__all__ = ["BaseModel", "aws", "json_default"]
