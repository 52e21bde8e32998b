"""Tests for scripts.manage_credentials."""

from unittest.mock import patch

import pytest

from scripts.manage_credentials import import_env, main, store

MODULE = "scripts.manage_credentials"


@pytest.fixture
def env_file(tmp_path):
    p = tmp_path / ".env"
    p.write_text(
        "# Database\n"
        "DATABASE_URL=sqlite:///./networth.db\n"
        "\n"
        "# SnapTrade\n"
        "SNAPTRADE_CLIENT_ID=my-client-id\n"
        "SNAPTRADE_CONSUMER_KEY=my-consumer-key\n"
        "AUTH_JWT_SECRET=\n"
    )
    return p


class TestImportEnv:
    def test_imports_non_empty_credentials(self, env_file, capsys):
        with (
            patch(f"{MODULE}.set_credential", return_value=True) as mock_set,
            patch(f"{MODULE}.get_credential", return_value=None),
        ):
            assert import_env(env_file) == 0

        stored = {call.args[0] for call in mock_set.call_args_list}
        assert stored == {"SNAPTRADE_CLIENT_ID", "SNAPTRADE_CONSUMER_KEY"}
        assert "+ SNAPTRADE_CLIENT_ID" in capsys.readouterr().out

    def test_same_value_not_rewritten(self, env_file):
        def fake_get(key):
            return "my-client-id" if key == "SNAPTRADE_CLIENT_ID" else None

        with (
            patch(f"{MODULE}.set_credential", return_value=True) as mock_set,
            patch(f"{MODULE}.get_credential", side_effect=fake_get),
        ):
            import_env(env_file)

        assert {call.args[0] for call in mock_set.call_args_list} == {"SNAPTRADE_CONSUMER_KEY"}

    def test_clean_keeps_other_lines(self, env_file):
        with (
            patch(f"{MODULE}.set_credential", return_value=True),
            patch(f"{MODULE}.get_credential", return_value=None),
        ):
            import_env(env_file, clean=True)

        content = env_file.read_text()
        assert "SNAPTRADE_CLIENT_ID" not in content
        assert "SNAPTRADE_CONSUMER_KEY" not in content
        assert "DATABASE_URL=sqlite:///./networth.db" in content
        assert "# SnapTrade" in content
        assert "AUTH_JWT_SECRET=" in content

    def test_failure_is_reported(self, env_file, capsys):
        with (
            patch(f"{MODULE}.set_credential", return_value=False),
            patch(f"{MODULE}.get_credential", return_value=None),
        ):
            assert import_env(env_file, clean=True) == 1

        assert "! SNAPTRADE_CLIENT_ID" in capsys.readouterr().out
        assert "SNAPTRADE_CLIENT_ID" in env_file.read_text()

    def test_missing_file(self, tmp_path, capsys):
        assert import_env(tmp_path / "missing.env") == 1
        assert "No .env file found" in capsys.readouterr().out


class TestStore:
    def test_unknown_key_rejected(self, capsys):
        with patch(f"{MODULE}.set_credential") as mock_set:
            assert store("DATABASE_URL", "x") == 1
        mock_set.assert_not_called()

    def test_prompts_for_value(self):
        with (
            patch(f"{MODULE}.getpass.getpass", return_value="typed-secret"),
            patch(f"{MODULE}.set_credential", return_value=True) as mock_set,
        ):
            assert main(["set", "AUTH_JWT_SECRET"]) == 0
        mock_set.assert_called_once_with("AUTH_JWT_SECRET", "typed-secret")


class TestMain:
    def test_show_hides_values(self, capsys):
        with patch(f"{MODULE}.get_credential", side_effect=lambda k: "v" if k == "AUTH_JWT_SECRET" else None):
            assert main(["show"]) == 0

        out = capsys.readouterr().out
        assert "AUTH_JWT_SECRET" in out
        assert "stored" in out
        assert "missing" in out

    def test_delete(self):
        with patch(f"{MODULE}.delete_credential", return_value=True) as mock_delete:
            assert main(["delete", "SNAPTRADE_CONSUMER_KEY"]) == 0
        mock_delete.assert_called_once_with("SNAPTRADE_CONSUMER_KEY")

    def test_no_command_prints_help(self):
        assert main([]) == 1
