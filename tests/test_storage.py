"""Tests for config persistence."""

import json
import logging
from datetime import datetime, timezone

from zkill.storage import CONFIG_VERSION, Storage, default_config_path


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestStorageDefaults:
    """Tests for first use and recovery."""

    def test_creates_default_config(self, tmp_path):
        """Test a missing file is created with default preferences."""
        path = tmp_path / "nested" / "config.json"
        storage = Storage(path)

        assert storage.is_auto_kill_enabled() is False
        assert storage.is_confirm_kill_enabled() is True
        assert storage.get_all_mappings() == []
        assert read_json(path) == {
            "portMappings": [],
            "autoKillEnabled": False,
            "confirmKill": True,
            "version": CONFIG_VERSION,
        }

    def test_corrupted_file_is_replaced(self, tmp_path, caplog):
        """Test invalid JSON is logged and replaced with defaults."""
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="zkill.storage"):
            storage = Storage(path)

        assert storage.get_all_mappings() == []
        assert "corrupted" in caplog.text
        assert read_json(path)["version"] == CONFIG_VERSION

    def test_non_object_document_is_replaced(self, tmp_path):
        """Test a JSON array at the top level counts as corruption."""
        path = tmp_path / "config.json"
        path.write_text("[]", encoding="utf-8")

        storage = Storage(path)

        assert storage.is_confirm_kill_enabled() is True

    def test_unversioned_config_is_migrated(self, tmp_path):
        """Test pre-versioning files keep mappings and gain the new defaults."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "portMappings": [
                        {
                            "port": 3000,
                            "projectName": "webapp",
                            "projectPath": "/srv/webapp",
                            "lastUsed": "2025-12-13T10:30:45.000Z",
                            "autoKill": True,
                        }
                    ],
                    "autoKillEnabled": True,
                }
            ),
            encoding="utf-8",
        )

        storage = Storage(path)

        mapping = storage.get_port_mapping(3000)
        assert mapping.project_name == "webapp"
        assert mapping.auto_kill is True
        assert mapping.last_used == datetime(2025, 12, 13, 10, 30, 45, tzinfo=timezone.utc)
        assert storage.is_auto_kill_enabled() is True
        assert storage.is_confirm_kill_enabled() is True
        assert read_json(path)["version"] == CONFIG_VERSION

    def test_malformed_mapping_is_skipped(self, tmp_path):
        """Test one bad entry does not discard the others."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "portMappings": [
                        {"port": 3000},
                        {
                            "port": 8000,
                            "projectName": "api",
                            "projectPath": "/srv/api",
                            "lastUsed": "2025-12-13T10:30:45+00:00",
                        },
                    ],
                    "version": CONFIG_VERSION,
                }
            ),
            encoding="utf-8",
        )

        storage = Storage(path)

        assert [m.port for m in storage.get_all_mappings()] == [8000]

    def test_zkill_home(self, tmp_path, monkeypatch):
        """Test ZKILL_HOME relocates the config file."""
        monkeypatch.setenv("ZKILL_HOME", str(tmp_path / "home"))

        assert default_config_path() == tmp_path / "home" / "config.json"
        assert Storage().config_path == tmp_path / "home" / "config.json"


class TestPortMappings:
    """Tests for mapping management."""

    def test_add_and_reload(self, storage):
        """Test mappings survive a new Storage instance."""
        storage.add_port_mapping(3000, "webapp", "/srv/webapp", auto_kill=True)

        reloaded = Storage(storage.config_path)
        mapping = reloaded.get_port_mapping(3000)

        assert mapping.project_name == "webapp"
        assert mapping.project_path == "/srv/webapp"
        assert mapping.auto_kill is True
        assert mapping.last_used.tzinfo is not None

    def test_port_is_unique(self, storage):
        """Test adding a mapped port replaces its previous owner."""
        storage.add_port_mapping(3000, "webapp", "/srv/webapp")
        storage.add_port_mapping(3000, "api", "/srv/api")

        mappings = storage.get_all_mappings()
        assert len(mappings) == 1
        assert mappings[0].project_name == "api"

    def test_sorted_by_port(self, storage):
        """Test get_all_mappings orders by port."""
        storage.add_port_mapping(8080, "c", "/c")
        storage.add_port_mapping(3000, "a", "/a")
        storage.add_port_mapping(5000, "b", "/b")

        assert [m.port for m in storage.get_all_mappings()] == [3000, 5000, 8080]

    def test_mappings_for_project(self, storage):
        """Test filtering by project path."""
        storage.add_port_mapping(3000, "web", "/srv/web")
        storage.add_port_mapping(3001, "web", "/srv/web")
        storage.add_port_mapping(8000, "api", "/srv/api")

        assert sorted(m.port for m in storage.get_mappings_for_project("/srv/web")) == [3000, 3001]

    def test_remove(self, storage):
        """Test removing a mapping persists."""
        storage.add_port_mapping(3000, "web", "/srv/web")
        storage.remove_port_mapping(3000)

        assert Storage(storage.config_path).get_port_mapping(3000) is None

    def test_flags_persist(self, storage):
        """Test both preference flags are written to disk."""
        storage.set_auto_kill(True)
        storage.set_confirm_kill(False)

        data = read_json(storage.config_path)
        assert data["autoKillEnabled"] is True
        assert data["confirmKill"] is False

    def test_clear(self, storage):
        """Test clear restores the defaults."""
        storage.add_port_mapping(3000, "web", "/srv/web")
        storage.set_auto_kill(True)

        storage.clear()

        assert storage.get_all_mappings() == []
        assert storage.is_auto_kill_enabled() is False

    def test_unwritable_location_is_not_fatal(self, tmp_path, caplog):
        """Test save failures are logged rather than raised."""
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")

        with caplog.at_level(logging.ERROR, logger="zkill.storage"):
            storage = Storage(blocker / "config.json")
            storage.add_port_mapping(3000, "web", "/srv/web")

        assert storage.get_port_mapping(3000) is not None
        assert "Failed to save" in caplog.text
