import json
import os
from datetime import date

import pytest

from whiteboard.config import SettingsLoader, settings_from_dict
from whiteboard.errors import ConfigurationError


class TestSettingsFromDict:
    """Descriptor validation"""

    def test_defaults(self):
        settings = settings_from_dict()

        assert [t.name for t in settings.tiers] == ["recent", "upcoming"]
        assert settings.tier("recent").offsets == (0, 1, 2)
        assert settings.window_days == 8
        assert settings.changeover_date == date(2024, 12, 9)
        assert settings.bulk_marker == "__ALL__"
        assert settings.roster_ranges[-1].type == "staff"

    def test_unknown_tier(self):
        with pytest.raises(KeyError):
            settings_from_dict().tier("someday")

    def test_tiers_must_not_overlap(self):
        tiers = [
            {"name": "a", "first_offset": 0, "last_offset": 3},
            {"name": "b", "first_offset": 3, "last_offset": 5},
        ]
        with pytest.raises(ConfigurationError):
            settings_from_dict({"tiers": tiers})

    def test_tiers_must_be_contiguous(self):
        tiers = [
            {"name": "a", "first_offset": 0, "last_offset": 1},
            {"name": "b", "first_offset": 3, "last_offset": 5},
        ]
        with pytest.raises(ConfigurationError):
            settings_from_dict({"tiers": tiers})

    def test_bad_values(self):
        with pytest.raises(ConfigurationError):
            settings_from_dict({"duplicate_policy": "merge"})
        with pytest.raises(ConfigurationError):
            settings_from_dict({"changeover_date": "9 Dec 2024"})
        with pytest.raises(ConfigurationError):
            settings_from_dict({"roster_ranges": [{"range": "A1:A3", "category": "X", "type": "pilot"}]})
        with pytest.raises(ConfigurationError):
            settings_from_dict({"tiers": []})


class TestSettingsLoader:
    def test_without_path_uses_defaults(self):
        loader = SettingsLoader("")
        assert loader.get() is loader.get()

    def test_reloads_when_file_changes(self, tmp_path):
        path = tmp_path / "whiteboard.json"
        path.write_text(json.dumps({"roster_sheet": "Roster"}), encoding="utf-8")
        loader = SettingsLoader(str(path))

        first = loader.get()
        assert loader.get() is first

        path.write_text(json.dumps({"roster_sheet": "People"}), encoding="utf-8")
        stat = os.stat(path)
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))

        second = loader.get()
        assert second is not first
        assert second.roster_sheet == "People"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "whiteboard.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            SettingsLoader(str(path)).get()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            SettingsLoader(str(tmp_path / "absent.json")).get()
