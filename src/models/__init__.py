from .base import Base, BaseModel, TimeStamp, UTCDateTime

__all__ = [
    "Base",
    "BaseModel",
    "TimeStamp",
    "UTCDateTime",
]
