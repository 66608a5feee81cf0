"""Pydantic schemas for assembled previews and the HTTP API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PreviewFields(BaseModel):
    """Metadata produced by the crawler for one page."""

    canonical_host: str = ""
    title: str = ""
    description: str = ""
    images: Tuple[str, ...] = ()
    icon: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("images", mode="before")
    @classmethod
    def _drop_empty_images(cls, value):
        return tuple(image for image in value or () if image)

    @property
    def image(self) -> str:
        """Primary image: the first collected image, or an empty string."""
        return self.images[0] if self.images else ""


class Preview(PreviewFields):
    """Immutable preview of a link, cached under both its source and final URL."""

    source_url: str
    final_url: str

    def to_response(self) -> Dict[str, Any]:
        """Keyed response mapping used by callers expecting plain dictionaries."""
        return {
            "url": self.source_url,
            "finalUrl": self.final_url,
            "canonicalUrl": self.canonical_host,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "images": list(self.images),
            "icon": self.icon,
        }


class PreviewOut(BaseModel):
    """Preview payload returned by the API."""

    url: str
    final_url: str = Field(serialization_alias="finalUrl")
    canonical_url: str = Field(serialization_alias="canonicalUrl")
    title: str
    description: str
    image: str
    images: List[str]
    icon: Optional[str] = None

    @classmethod
    def from_preview(cls, preview: Preview) -> "PreviewOut":
        return cls(
            url=preview.source_url,
            final_url=preview.final_url,
            canonical_url=preview.canonical_host,
            title=preview.title,
            description=preview.description,
            image=preview.image,
            images=list(preview.images),
            icon=preview.icon,
        )


__all__ = ["PreviewFields", "Preview", "PreviewOut"]
