"""Framework catalogue loader.

Seeds frameworks and their controls from ``catalogs/frameworks.yaml``::

    frameworks:
      - id: soc2
        name: SOC 2
        version: "2017"
        controls:
          - code: CC1.1
            title: Integrity and ethical values
            status: implemented

Loading is guarded the same way for every file:

* Size limit (default 512 KB) rejects oversized files.
* ``yaml.safe_load`` only, no arbitrary Python objects.
* Strict Pydantic models (unknown keys rejected, entries frozen) applying
  the repository field rules, so a catalogue that loads also imports.
* Typed exceptions (:class:`CatalogNotFound`, :class:`CatalogInvalid`,
  :class:`CatalogTooLarge`).
"""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from grc.core.db import transaction
from grc.core.errors import CatalogInvalid, CatalogNotFound, CatalogTooLarge
from grc.core.models import ImplementationStatus
from grc.core.repository import Framework, create_control, create_framework
from grc.core.validation import validate_control_code, validate_id, validate_length

logger = structlog.get_logger()

_DEFAULT_MAX_SIZE_BYTES = 512 * 1024

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class CatalogControl(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str
    title: str
    description: str = ""
    status: ImplementationStatus = ImplementationStatus.NOT_IMPLEMENTED

    @field_validator("code")
    @classmethod
    def _code_is_id_safe(cls, v: str) -> str:
        # The code becomes part of the control id, so it obeys both rules.
        return validate_id(validate_control_code(v), field="control code")

    @field_validator("title")
    @classmethod
    def _title_length(cls, v: str) -> str:
        return validate_length(v, field="control title", max_len=200)


class CatalogFramework(BaseModel):
    """A single framework entry from the catalogue.

    Field rules mirror :func:`grc.core.repository.create_framework` and
    :func:`grc.core.repository.create_control`, so a catalogue that loads
    also imports.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    version: str
    id: str | None = None
    description: str = ""
    controls: list[CatalogControl] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: str) -> str:
        return validate_length(v, field="framework name", min_len=2, max_len=100)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, v: Any) -> Any:
        # YAML turns `version: 2022` into an int.
        return str(v) if isinstance(v, (int, float)) else v

    @field_validator("version")
    @classmethod
    def _version_length(cls, v: str) -> str:
        return validate_length(v, field="framework version", max_len=50)

    @field_validator("id")
    @classmethod
    def _id_is_safe(cls, v: str | None) -> str | None:
        return validate_id(v, field="framework id") if v is not None else None

    @model_validator(mode="after")
    def _controls_fit_framework(self) -> CatalogFramework:
        validate_id(self.framework_id, field="framework id")
        seen: set[str] = set()
        for ctl in self.controls:
            if ctl.code in seen:
                raise ValueError(f"duplicate control code {ctl.code!r}")
            seen.add(ctl.code)
            validate_id(self.control_id(ctl), field="control id")
        return self

    @property
    def framework_id(self) -> str:
        """Explicit id, or a slug of ``name-version``."""
        if self.id:
            return self.id
        return _SLUG_RE.sub("-", f"{self.name}-{self.version}".lower()).strip("-")

    def control_id(self, control: CatalogControl) -> str:
        return f"{self.framework_id}.{control.code}"


def load_framework_catalog(
    path: Path,
    *,
    max_size_bytes: int = _DEFAULT_MAX_SIZE_BYTES,
) -> list[CatalogFramework]:
    """Load and validate a framework catalogue YAML file.

    Accepts ``{"frameworks": [...]}`` or a bare list.

    Raises
    ------
    CatalogNotFound
        File does not exist.
    CatalogTooLarge
        File exceeds *max_size_bytes*.
    CatalogInvalid
        YAML parse error or schema validation failure.
    """
    if not path.exists():
        raise CatalogNotFound(f"catalogue not found: {path}")

    size = path.stat().st_size
    if size > max_size_bytes:
        raise CatalogTooLarge(f"catalogue {path.name} is {size:,} bytes (limit {max_size_bytes:,})")

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise CatalogInvalid(f"catalogue is not valid UTF-8: {exc}") from exc

    try:
        raw: Any = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CatalogInvalid(f"YAML parse error: {exc}") from exc

    if raw is None:
        return []

    if isinstance(raw, dict) and "frameworks" in raw:
        items = raw["frameworks"]
    elif isinstance(raw, list):
        items = raw
    else:
        raise CatalogInvalid("catalogue schema invalid: expected list or {'frameworks': list}")

    if not isinstance(items, list):
        raise CatalogInvalid("catalogue 'frameworks' key must contain a list")

    out: list[CatalogFramework] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise CatalogInvalid(f"catalogue item #{i} must be a mapping")
        try:
            entry = CatalogFramework.model_validate(item)
        except ValidationError as exc:
            raise CatalogInvalid(f"catalogue item #{i}: {exc}") from exc
        if entry.framework_id in seen:
            raise CatalogInvalid(f"catalogue item #{i}: duplicate framework id {entry.framework_id!r}")
        seen.add(entry.framework_id)
        out.append(entry)

    return out


def import_catalog(conn: sqlite3.Connection, frameworks: list[CatalogFramework]) -> list[Framework]:
    """Persist catalogue frameworks and their controls in one transaction.

    Control ids are ``<framework_id>.<code>``.  Either every framework is
    imported or none is: ``sqlite3.IntegrityError`` (a framework id that
    already exists) or ``ValueError`` rolls the whole import back.
    """
    created: list[Framework] = []
    with transaction(conn):
        for entry in frameworks:
            fw = create_framework(
                conn,
                framework_id=entry.framework_id,
                name=entry.name,
                version=entry.version,
                description=entry.description,
            )
            for ctl in entry.controls:
                create_control(
                    conn,
                    control_id=entry.control_id(ctl),
                    framework_id=fw.framework_id,
                    code=ctl.code,
                    title=ctl.title,
                    description=ctl.description,
                    implementation_status=ctl.status,
                )
            created.append(fw)
    for fw, entry in zip(created, frameworks):
        logger.info("catalog_framework_imported", framework_id=fw.framework_id, controls=len(entry.controls))
    return created
