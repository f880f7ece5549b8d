"""Tests for routing table parsing."""

from types import MappingProxyType

import pytest

from deployhook.core.tables import (
    ConfigSnapshot,
    LoadError,
    load_snapshot,
    parse_deploys,
    parse_hooks,
    parse_links,
)


class TestParseHooks:
    def test_first_field_only(self, tmp_path):
        path = tmp_path / "hooks"
        path.write_text("build extra fields here\ndocs\n")
        assert parse_hooks(path) == ["build", "docs"]

    def test_duplicates_kept(self, tmp_path):
        path = tmp_path / "hooks"
        path.write_text("build\nbuild\n")
        assert parse_hooks(path) == ["build", "build"]

    def test_skips_blank_and_comment_lines(self, tmp_path):
        path = tmp_path / "hooks"
        path.write_text("# hooks\n\n   \nbuild\n")
        assert parse_hooks(path) == ["build"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadError) as exc_info:
            parse_hooks(tmp_path / "hooks")
        assert exc_info.value.table == "hooks"
        assert "cannot read" in str(exc_info.value)


class TestParseLinks:
    def test_preserves_order_per_hook(self, tmp_path):
        path = tmp_path / "links"
        path.write_text("build app2\ndocs site\nbuild app1\nbuild app3\n")
        links = parse_links(path)
        assert links == {"build": ["app2", "app1", "app3"], "docs": ["site"]}
        assert list(links) == ["build", "docs"]

    def test_same_app_on_several_hooks(self, tmp_path):
        path = tmp_path / "links"
        path.write_text("build app1\nrelease app1\n")
        assert parse_links(path) == {"build": ["app1"], "release": ["app1"]}

    @pytest.mark.parametrize("line", ["build", "build app1 extra"])
    def test_wrong_field_count(self, tmp_path, line):
        path = tmp_path / "links"
        path.write_text(f"docs site\n{line}\n")
        with pytest.raises(LoadError) as exc_info:
            parse_links(path)
        assert exc_info.value.table == "links"
        assert exc_info.value.line_number == 2


class TestParseDeploys:
    def test_parse(self, tmp_path):
        path = tmp_path / "deploys"
        path.write_text("app1 https://git.example.com/app1.git\napp2 repoB\n")
        assert parse_deploys(path) == {
            "app1": "https://git.example.com/app1.git",
            "app2": "repoB",
        }

    def test_missing_repository(self, tmp_path):
        path = tmp_path / "deploys"
        path.write_text("app1\n")
        with pytest.raises(LoadError) as exc_info:
            parse_deploys(path)
        assert exc_info.value.table == "deploys"
        assert exc_info.value.line_number == 1

    def test_duplicate_app(self, tmp_path):
        path = tmp_path / "deploys"
        path.write_text("app1 repoA\napp1 repoB\n")
        with pytest.raises(LoadError, match="duplicate app 'app1'"):
            parse_deploys(path)


class TestLoadSnapshot:
    def test_scenario(self, data_dir):
        snapshot = load_snapshot(data_dir)
        assert snapshot.hooks == ("build",)
        assert snapshot.links["build"] == ("app1", "app2")
        assert dict(snapshot.deploys) == {"app1": "repoA", "app2": "repoB"}
        assert snapshot.source == data_dir

    def test_custom_filenames(self, tmp_path):
        (tmp_path / "h.txt").write_text("build\n")
        (tmp_path / "l.txt").write_text("build app1\n")
        (tmp_path / "d.txt").write_text("app1 repoA\n")
        snapshot = load_snapshot(tmp_path, "h.txt", "l.txt", "d.txt")
        assert snapshot.links["build"] == ("app1",)

    def test_one_bad_table_fails_everything(self, tables, tmp_path):
        data_dir = tables(tmp_path / "data", deploys="app1 repoA\napp2\n")
        with pytest.raises(LoadError) as exc_info:
            load_snapshot(data_dir)
        assert exc_info.value.table == "deploys"

    def test_missing_table(self, data_dir):
        (data_dir / "links").unlink()
        with pytest.raises(LoadError) as exc_info:
            load_snapshot(data_dir)
        assert exc_info.value.table == "links"

    def test_tolerates_links_without_repository(self, tables, tmp_path):
        data_dir = tables(tmp_path / "data", links="build app1\nbuild ghost\n")
        snapshot = load_snapshot(data_dir)
        assert snapshot.links["build"] == ("app1", "ghost")
        assert snapshot.unlinked_apps() == ["ghost"]


class TestConfigSnapshot:
    def test_tables_are_read_only(self):
        snapshot = ConfigSnapshot.build(["build"], {"build": ["app1"]}, {"app1": "repoA"})
        assert isinstance(snapshot.links, MappingProxyType)
        with pytest.raises(TypeError):
            snapshot.deploys["app1"] = "other"  # type: ignore[index]
        with pytest.raises(TypeError):
            snapshot.links["build"] = ("x",)  # type: ignore[index]

    def test_build_copies_inputs(self):
        links = {"build": ["app1"]}
        deploys = {"app1": "repoA"}
        snapshot = ConfigSnapshot.build(["build"], links, deploys)
        links["build"].append("app2")
        deploys["app2"] = "repoB"
        assert snapshot.links["build"] == ("app1",)
        assert "app2" not in snapshot.deploys

    def test_empty(self):
        snapshot = ConfigSnapshot()
        assert snapshot.hooks == ()
        assert snapshot.links.get("build") is None
        assert snapshot.summary()["deploys"] == 0
