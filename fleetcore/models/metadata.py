"""Image and tools metadata models.

Metadata indexes are JSON documents published under a source's base URL::

    {"format": "products:1.0", "products": [{...}, {...}]}

Image products carry ``id``, ``series``, ``arch`` and ``region``; tools
products carry ``version``, ``series``, ``arch`` and ``url``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

INDEX_FORMAT = "products:1.0"


class MetadataSource(BaseModel):
    """A ranked location from which a metadata index is fetched.

    Lower ``priority`` values are consulted first.
    """

    model_config = ConfigDict(frozen=True)

    description: str
    base_url: str
    priority: int = 0

    def url(self, path: str = "") -> str:
        """Join ``path`` onto the base URL."""
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        return base + path.lstrip("/")


class ImageSpec(BaseModel):
    """One bootable image published by a metadata source."""

    model_config = ConfigDict(frozen=True)

    id: str
    series: str
    arch: str
    region: str
    endpoint: str | None = None
    virt_type: str | None = None


class ToolsSpec(BaseModel):
    """One agent tools tarball published by a metadata source."""

    model_config = ConfigDict(frozen=True)

    version: str
    series: str
    arch: str
    url: str
    sha256: str | None = None
    size: int | None = None

    @property
    def binary_version(self) -> str:
        return f"{self.version}-{self.series}-{self.arch}"


class LookupParams(BaseModel):
    """Parameters for validating image metadata."""

    model_config = ConfigDict(frozen=True)

    series: str
    arch: str | None = None
    region: str
    endpoint: str
    sources: list[MetadataSource] = Field(default_factory=list)
