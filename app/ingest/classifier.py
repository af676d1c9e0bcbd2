"""Filename conventions for submitted assets.

A submission is named ``<Category> <Name>[ <description>].<ext>`` (an underscore
works in place of the first space). The storage filename is the only place the
category, name and description survive, so it is derived here and nowhere else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from types import MappingProxyType
from typing import Mapping, Optional

from app.core.errors import (
    FileTooLarge,
    InvalidCharacters,
    MalformedName,
    UnknownCategory,
    UnsupportedExtension,
    UnsupportedThreeDFormat,
)


class Category(str, Enum):
    STOCK_PHOTOS = "StockPhotos"
    VIDEO = "Video"
    MUSIC = "Music"
    SFX = "SFX"
    GREEN_SCREEN = "GreenScreen"
    TEXTURE = "Texture"
    GIF = "GIF"
    ILLUSTRATION = "Illustration"
    BACKGROUND = "Background"
    ICON = "Icon"
    MODEL_3D = "3D"


class MediaKind(str, Enum):
    VIDEO = "video"
    MODEL = "model"
    IMAGE = "image"
    ANIMATION = "animation"
    AUDIO = "audio"
    VECTOR = "vector"
    OTHER = "other"


CATEGORY_ALIASES: Mapping[str, Category] = MappingProxyType(
    {
        "stockphoto": Category.STOCK_PHOTOS,
        "stockphotos": Category.STOCK_PHOTOS,
        "photo": Category.STOCK_PHOTOS,
        "video": Category.VIDEO,
        "videos": Category.VIDEO,
        "music": Category.MUSIC,
        "audio": Category.MUSIC,
        "sfx": Category.SFX,
        "soundfx": Category.SFX,
        "greenscreen": Category.GREEN_SCREEN,
        "greenscreens": Category.GREEN_SCREEN,
        "texture": Category.TEXTURE,
        "textures": Category.TEXTURE,
        "gif": Category.GIF,
        "gifs": Category.GIF,
        "illustration": Category.ILLUSTRATION,
        "illustrations": Category.ILLUSTRATION,
        "background": Category.BACKGROUND,
        "backgrounds": Category.BACKGROUND,
        "icon": Category.ICON,
        "icons": Category.ICON,
        "3d": Category.MODEL_3D,
        "model": Category.MODEL_3D,
        "mesh": Category.MODEL_3D,
    }
)

VALID_CATEGORIES: tuple[str, ...] = tuple(dict.fromkeys(category.value for category in CATEGORY_ALIASES.values()))

MEDIA_KINDS: Mapping[str, MediaKind] = MappingProxyType(
    {
        ".png": MediaKind.IMAGE,
        ".jpg": MediaKind.IMAGE,
        ".jpeg": MediaKind.IMAGE,
        ".gif": MediaKind.ANIMATION,
        ".mp4": MediaKind.VIDEO,
        ".mov": MediaKind.VIDEO,
        ".avi": MediaKind.VIDEO,
        ".webm": MediaKind.VIDEO,
        ".mp3": MediaKind.AUDIO,
        ".wav": MediaKind.AUDIO,
        ".aac": MediaKind.AUDIO,
        ".svg": MediaKind.VECTOR,
        ".glb": MediaKind.MODEL,
        ".obj": MediaKind.OTHER,
        ".fbx": MediaKind.OTHER,
        ".gltf": MediaKind.OTHER,
    }
)

ALLOWED_EXTENSIONS = frozenset(MEDIA_KINDS)
MODEL_EXTENSION = ".glb"
THUMBNAIL_SUFFIX = "_thumb.jpg"

_NAME_PATTERN = re.compile(r"^(?P<prefix>[A-Za-z0-9]+)[ _](?P<core>\S+)(?:\s+(?P<description>.+))?$")
_DISALLOWED_CORE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class ParsedName:
    filename: str
    category_key: str
    category: Category
    core_name: str
    description: str
    extension: str

    @property
    def kind(self) -> MediaKind:
        return media_kind_for(self.extension)

    @property
    def display_name(self) -> str:
        return self.core_name.replace("_", " ")

    @property
    def storage_basename(self) -> str:
        parts = [self.category.value, self.core_name]
        if self.description:
            parts.append(self.description)
        return "_".join(parts)

    @property
    def storage_filename(self) -> str:
        return f"{self.storage_basename}{self.extension}"

    @property
    def thumbnail_filename(self) -> str:
        return f"{self.storage_basename}{THUMBNAIL_SUFFIX}"


def media_kind_for(extension: str) -> MediaKind:
    return MEDIA_KINDS.get(extension.lower(), MediaKind.OTHER)


def split_extension(filename: str) -> tuple[str, str]:
    """Return ``(stem, lower-cased extension)``; the extension is ``""`` when absent."""
    suffix = PurePath(filename).suffix
    stem = filename[: -len(suffix)] if suffix else filename
    return stem, suffix.lower()


def check_size(filename: str, size_bytes: int, limit_bytes: int) -> None:
    if size_bytes > limit_bytes:
        raise FileTooLarge(filename, size_bytes, limit_bytes)


def classify_filename(filename: str) -> ParsedName:
    """Parse and validate ``filename``, raising the first ``ValidationError`` that applies."""
    stem, extension = split_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedExtension(filename, extension)

    match = _NAME_PATTERN.match(stem)
    if match is None:
        raise MalformedName(filename)

    prefix = match.group("prefix")
    category = CATEGORY_ALIASES.get(prefix.lower())
    if category is None:
        raise UnknownCategory(filename, prefix, VALID_CATEGORIES)

    core = match.group("core").strip()
    invalid = _DISALLOWED_CORE_CHARS.findall(core)
    if invalid:
        raise InvalidCharacters(filename, dict.fromkeys(invalid))

    if category is Category.MODEL_3D and extension != MODEL_EXTENSION:
        raise UnsupportedThreeDFormat(filename, extension, MODEL_EXTENSION)

    return ParsedName(
        filename=filename,
        category_key=prefix,
        category=category,
        core_name=core,
        description=_normalise_description(match.group("description")),
        extension=extension,
    )


def _normalise_description(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return _WHITESPACE_RUN.sub("_", raw.strip())


__all__ = [
    "Category",
    "MediaKind",
    "ParsedName",
    "CATEGORY_ALIASES",
    "VALID_CATEGORIES",
    "ALLOWED_EXTENSIONS",
    "MODEL_EXTENSION",
    "check_size",
    "classify_filename",
    "media_kind_for",
    "split_extension",
]
