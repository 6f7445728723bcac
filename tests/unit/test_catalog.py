"""Tests for grc.catalog — framework catalogue loader.

Exercises every guard: missing file, size limit, YAML errors, schema
validation, and the import into SQLite.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from grc.catalog import CatalogControl, CatalogFramework, import_catalog, load_framework_catalog
from grc.core.errors import CatalogInvalid, CatalogNotFound, CatalogTooLarge
from grc.core.models import ImplementationStatus
from grc.core.repository import count_controls, create_framework, get_control, list_frameworks

VALID_YAML = """\
frameworks:
  - id: iso27001
    name: ISO 27001
    version: 2022
    controls:
      - code: A.5.1
        title: Policies for information security
        status: implemented
      - code: A.5.2
        title: Information security roles
  - name: SOC 2
    version: "2017"
"""


def _write(tmp_path: Path, text: str, name: str = "frameworks.yaml") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadFrameworkCatalog:
    def test_loads_valid_catalog(self, tmp_path: Path) -> None:
        frameworks = load_framework_catalog(_write(tmp_path, VALID_YAML))
        assert [fw.name for fw in frameworks] == ["ISO 27001", "SOC 2"]
        iso = frameworks[0]
        assert iso.version == "2022"
        assert iso.controls[0].status is ImplementationStatus.IMPLEMENTED
        assert iso.controls[1].status is ImplementationStatus.NOT_IMPLEMENTED

    def test_bare_list_accepted(self, tmp_path: Path) -> None:
        frameworks = load_framework_catalog(_write(tmp_path, "- name: GDPR\n  version: '2016'\n"))
        assert frameworks[0].framework_id == "gdpr-2016"

    def test_slug_id(self) -> None:
        fw = CatalogFramework(name="NIST CSF", version="2.0")
        assert fw.framework_id == "nist-csf-2-0"

    def test_empty_file_is_empty_catalog(self, tmp_path: Path) -> None:
        assert load_framework_catalog(_write(tmp_path, "")) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogNotFound):
            load_framework_catalog(tmp_path / "nope.yaml")

    def test_too_large(self, tmp_path: Path) -> None:
        path = _write(tmp_path, VALID_YAML)
        with pytest.raises(CatalogTooLarge):
            load_framework_catalog(path, max_size_bytes=10)

    def test_yaml_syntax_error(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogInvalid, match="YAML parse error"):
            load_framework_catalog(_write(tmp_path, "frameworks: [unclosed\n"))

    def test_unsafe_tag_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogInvalid):
            load_framework_catalog(_write(tmp_path, "!!python/object/apply:os.system ['true']\n"))

    def test_wrong_top_level_shape(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogInvalid, match="expected list"):
            load_framework_catalog(_write(tmp_path, "just a string\n"))

    def test_frameworks_key_not_a_list(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogInvalid, match="must contain a list"):
            load_framework_catalog(_write(tmp_path, "frameworks: {name: x}\n"))

    def test_unknown_key_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(CatalogInvalid, match="item #0"):
            load_framework_catalog(_write(tmp_path, "- name: GDPR\n  version: '1'\n  vendor: eu\n"))

    def test_bad_status_rejected(self, tmp_path: Path) -> None:
        text = "- name: GDPR\n  version: '1'\n  controls:\n    - code: Art5\n      title: x\n      status: done\n"
        with pytest.raises(CatalogInvalid):
            load_framework_catalog(_write(tmp_path, text))

    def test_control_code_with_space_rejected(self, tmp_path: Path) -> None:
        text = "- name: GDPR\n  version: '1'\n  controls:\n    - code: Art 5\n      title: x\n"
        with pytest.raises(CatalogInvalid):
            load_framework_catalog(_write(tmp_path, text))

    def test_non_utf8_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "frameworks.yaml"
        path.write_bytes(b"- name: \xff\xfe\n")
        with pytest.raises(CatalogInvalid, match="UTF-8"):
            load_framework_catalog(path)

    @pytest.mark.parametrize(
        "body, message",
        [
            ("- name: C\n  version: '8'\n", "at least 2"),
            ("- name: CIS\n  version: '8'\n  controls:\n    - code: 1.1(a)\n      title: Inventory\n", "control code"),
            ("- name: CIS\n  version: '8'\n  id: cis/v8\n", "framework id"),
            ("- name: CIS\n  version: ''\n", "framework version"),
            (
                "- name: CIS\n  version: '8'\n  controls:\n"
                "    - code: '1.1'\n      title: Inventory\n    - code: '1.1'\n      title: Again\n",
                "duplicate control code",
            ),
        ],
    )
    def test_repository_field_rules_apply(self, tmp_path: Path, body: str, message: str) -> None:
        with pytest.raises(CatalogInvalid, match=message):
            load_framework_catalog(_write(tmp_path, body))

    def test_overlong_control_id_rejected(self, tmp_path: Path) -> None:
        body = f"- name: CIS\n  version: '8'\n  id: {'c' * 100}\n  controls:\n    - code: {'x' * 40}\n      title: Long\n"
        with pytest.raises(CatalogInvalid, match="control id"):
            load_framework_catalog(_write(tmp_path, body))

    def test_duplicate_framework_id_rejected(self, tmp_path: Path) -> None:
        body = "- name: CIS\n  version: '8'\n  id: cis\n- name: CIS v8\n  version: '8'\n  id: cis\n"
        with pytest.raises(CatalogInvalid, match="duplicate framework id"):
            load_framework_catalog(_write(tmp_path, body))


class TestImportCatalog:
    def test_import_creates_frameworks_and_controls(self, conn, tmp_path: Path) -> None:
        created = import_catalog(conn, load_framework_catalog(_write(tmp_path, VALID_YAML)))
        assert [fw.framework_id for fw in created] == ["iso27001", "soc-2-2017"]
        assert {fw.framework_id for fw in list_frameworks(conn)} == {"iso27001", "soc-2-2017"}

        ctl = get_control(conn, "iso27001.A.5.1")
        assert ctl is not None
        assert ctl.implementation_status is ImplementationStatus.IMPLEMENTED
        counts = count_controls(conn, "iso27001")
        assert (counts.total, counts.implemented) == (2, 1)

    def test_reimport_conflicts(self, conn, tmp_path: Path) -> None:
        entries = load_framework_catalog(_write(tmp_path, VALID_YAML))
        import_catalog(conn, entries)
        with pytest.raises(sqlite3.IntegrityError):
            import_catalog(conn, entries)


def test_shipped_catalog_is_valid() -> None:
    shipped = Path(__file__).resolve().parents[2] / "catalogs" / "frameworks.yaml"
    frameworks = load_framework_catalog(shipped)
    assert [fw.framework_id for fw in frameworks] == ["iso27001", "soc2"]
    assert all(fw.controls for fw in frameworks)


class TestImportIsAtomic:
    def test_conflict_rolls_back_earlier_frameworks(self, conn, tmp_path: Path) -> None:
        create_framework(conn, framework_id="cis", name="CIS Controls", version="8")
        body = "- name: SOC 2\n  version: '2017'\n  id: soc2\n- name: CIS Controls\n  version: '8'\n  id: cis\n"
        with pytest.raises(sqlite3.IntegrityError):
            import_catalog(conn, load_framework_catalog(_write(tmp_path, body)))
        assert [fw.framework_id for fw in list_frameworks(conn)] == ["cis"]
        assert not conn.in_transaction

    def test_invalid_control_rolls_back(self, conn) -> None:
        bad = CatalogFramework.model_construct(
            name="CIS Controls",
            version="8",
            id="cis",
            description="",
            controls=[
                CatalogControl.model_construct(
                    code="1.1(a)", title="Inventory", description="",
                    status=ImplementationStatus.NOT_IMPLEMENTED,
                )
            ],
        )
        with pytest.raises(ValueError, match="control_id"):
            import_catalog(conn, [bad])
        assert list_frameworks(conn) == []

        # The connection stays usable after the rollback.
        create_framework(conn, framework_id="cis", name="CIS Controls", version="8")
        assert [fw.framework_id for fw in list_frameworks(conn)] == ["cis"]
