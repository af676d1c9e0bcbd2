from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssetRecord(BaseModel):
    """One catalog entry. Serialised with the keys the catalog consumers already read."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Stored filename of the main asset.")
    name: str = Field(..., description="Human readable name, underscores rendered as spaces.")
    category: str
    description: str = ""
    download_url: str
    thumbnail_url: str = Field(default="", alias="thumb", description="Preview image; empty when none exists.")
    source_identity: str = Field(..., alias="source", description="Who submitted the asset.")
    created_at: datetime = Field(default_factory=utc_now, alias="date")

    @field_serializer("created_at")
    def _serialise_created_at(self, value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"

    def to_catalog(self) -> dict[str, str]:
        return self.model_dump(by_alias=True, mode="json")


__all__ = ["AssetRecord", "utc_now"]
