"""
Models describing level manifests and the collections that contain them.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

MANIFEST_FILENAME = "manifest.json"


class ParsedManifest(BaseModel):
    """The useful content of one manifest file."""

    name: str
    level_ids: list[str]


class CollectionManifestMeta(BaseModel):
    """A discovered manifest, as listed to the front-end."""

    id: str
    name: str
    path: str
    relative_path: str
    level_count: int
    source: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
