"""Tests for custom agent records and the /agents flow."""

import json
from unittest.mock import patch

import pytest

from chalk_cli.agents import (
    AgentRecord,
    create_agent_dialog,
    format_agent_listing,
    load_agents,
    manage_agents,
    save_agent,
    scope_dir,
    validate_agent_name,
)
from chalk_cli.config import ChalkConfig
from chalk_cli.errors import AgentError


@pytest.fixture
def config(tmp_path):
    return ChalkConfig(api_key="sk", model="base/model", config_dir=tmp_path / "home")


@pytest.fixture
def project(tmp_path):
    d = tmp_path / "project"
    d.mkdir()
    return d


def _record(name="reviewer", **kw):
    defaults = dict(
        description="Reviews diffs",
        model="some/model",
        tools=["tool_run"],
        created_at="2026-01-01T00:00:00+00:00",
    )
    defaults.update(kw)
    return AgentRecord(name=name, **defaults)


class TestValidateName:
    @pytest.mark.parametrize("name", ["a", "code-reviewer", "x1", "test-2-go"])
    def test_valid(self, name):
        assert validate_agent_name(name) is None

    @pytest.mark.parametrize(
        "name", ["", "Upper", "-lead", "trail-", "double--dash", "has space", "../up", "a" * 65]
    )
    def test_invalid(self, name):
        assert validate_agent_name(name) is not None


class TestSaveAndLoad:
    def test_project_scope_file(self, project, config):
        path = save_agent(_record(), project, config.config_dir)
        assert path == project.resolve() / ".chalk" / "agents" / "reviewer.json"
        data = json.loads(path.read_text())
        assert data == {
            "name": "reviewer",
            "description": "Reviews diffs",
            "model": "some/model",
            "tools": ["tool_run"],
            "createdAt": "2026-01-01T00:00:00+00:00",
        }

    def test_personal_scope_file(self, project, config):
        path = save_agent(_record(scope="personal"), project, config.config_dir)
        assert path == config.config_dir / "agents" / "reviewer.json"

    def test_existing_record_not_overwritten(self, project, config):
        save_agent(_record(description="first"), project, config.config_dir)
        with pytest.raises(AgentError, match="already exists"):
            save_agent(_record(description="second"), project, config.config_dir)
        loaded = load_agents(project, config.config_dir)
        assert loaded[0].description == "first"

    def test_invalid_name_rejected(self, project, config):
        with pytest.raises(AgentError, match="invalid agent name"):
            save_agent(_record(name="Bad Name"), project, config.config_dir)

    def test_unknown_tool_rejected(self, project, config):
        with pytest.raises(AgentError, match="unknown tools"):
            save_agent(_record(tools=["tool_fetch"]), project, config.config_dir)

    def test_load_orders_project_before_personal(self, project, config):
        save_agent(_record("zeta"), project, config.config_dir)
        save_agent(_record("alpha", scope="personal"), project, config.config_dir)
        save_agent(_record("beta"), project, config.config_dir)
        loaded = load_agents(project, config.config_dir)
        assert [(r.name, r.scope) for r in loaded] == [
            ("beta", "project"),
            ("zeta", "project"),
            ("alpha", "personal"),
        ]

    def test_bad_records_skipped_with_warning(self, project, config, capsys):
        save_agent(_record(), project, config.config_dir)
        store = scope_dir("project", project)
        (store / "broken.json").write_text("{nope")
        (store / "partial.json").write_text(json.dumps({"name": "partial"}))
        loaded = load_agents(project, config.config_dir)
        assert [r.name for r in loaded] == ["reviewer"]
        err = capsys.readouterr().err
        assert "broken.json" in err
        assert "partial.json" in err

    def test_no_stores(self, project, config):
        assert load_agents(project, config.config_dir) == []

    def test_unknown_scope(self, project):
        with pytest.raises(AgentError):
            scope_dir("team", project)


class TestListing:
    def test_empty(self):
        assert format_agent_listing([]) == "No custom agents defined."

    def test_entries(self):
        text = format_agent_listing([_record(tools=[]), _record("builder", scope="personal")])
        assert "reviewer" in text and "[project]" in text
        assert "builder" in text and "[personal]" in text
        assert "tools: (none)" in text
        assert "tools: tool_run" in text


class TestDialogFlow:
    def test_non_interactive_prints_listing(self, project, config, capsys):
        save_agent(_record(), project, config.config_dir)
        with patch("chalk_cli.agents.is_interactive", return_value=False):
            manage_agents(config, project)
        assert "reviewer" in capsys.readouterr().out

    def test_create_through_dialogs(self, project, config):
        with (
            patch(
                "chalk_cli.agents.prompt_text",
                side_effect=["helper", "Helps out", ""],
            ),
            patch("chalk_cli.agents.select_from_list", side_effect=[1, 0]),
        ):
            record = create_agent_dialog(config, project)

        assert record.model == "base/model"
        assert record.tools == ["tool_run"]
        assert record.scope == "project"
        assert (project / ".chalk" / "agents" / "helper.json").is_file()

    def test_cancel_at_any_step_saves_nothing(self, project, config):
        with (
            patch("chalk_cli.agents.prompt_text", side_effect=["helper", "Helps out", "m/x"]),
            patch("chalk_cli.agents.select_from_list", side_effect=[0, None]),
        ):
            assert create_agent_dialog(config, project) is None
        assert load_agents(project, config.config_dir) == []

    def test_invalid_name_from_dialog(self, project, config, capsys):
        with patch("chalk_cli.agents.prompt_text", return_value="No Good"):
            assert create_agent_dialog(config, project) is None
        assert "invalid agent name" in capsys.readouterr().err

    def test_menu_create_entry(self, project, config):
        with (
            patch("chalk_cli.agents.is_interactive", return_value=True),
            patch("chalk_cli.agents.select_from_list", return_value=0),
            patch("chalk_cli.agents.create_agent_dialog") as mock_create,
        ):
            manage_agents(config, project)
        mock_create.assert_called_once_with(config, project)
