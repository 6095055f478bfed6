"""SQLAlchemy ORM models for LangCMS."""

from langcms.models.base import Base
from langcms.models.content import (
    Collection,
    ConfigFile,
    DataFile,
    Image,
    JavascriptFile,
    Resume,
    StaticFile,
)
from langcms.models.sync import SyncLock, SyncManifest

__all__ = [
    "Base",
    "Collection",
    "ConfigFile",
    "DataFile",
    "Image",
    "JavascriptFile",
    "Resume",
    "StaticFile",
    "SyncLock",
    "SyncManifest",
]

TABLE_MODELS: dict[str, type[Base]] = {
    "collections": Collection,
    "config_files": ConfigFile,
    "data_files": DataFile,
    "static_files": StaticFile,
    "javascript_files": JavascriptFile,
    "images": Image,
    "resumes": Resume,
}
