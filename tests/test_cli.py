"""Tests for naslock.cli — command line interface."""

from unittest.mock import patch

import pytest

from naslock.cli import main
from naslock.credentials import UsernamePassword
from naslock.errors import EntryNotFound, Unreachable, VaultOpenError
from naslock.truenas import OutcomeKind, TrueNASClient, UnlockOutcome
from naslock.vault.secret import SecretBytes

CONFIG = """
[keepass]
path = "nas.kdbx"

[nas.main]
host = "truenas.local"
auth_entry = "TrueNAS admin"

[volume.media]
nas = "main"
dataset = "tank/media"
unlock_entry = "tank/media passphrase"

[volume.backup]
nas = "main"
dataset = "tank/backup"
unlock_entry = "uuid:3d6f0b0c-6f7a-4c72-9d1b-badbeefcafe0"
"""


@pytest.fixture
def config_file(tmp_path, clean_env):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG)
    return path


class TestCli:
    def test_version(self, capsys):
        rc = main(["version"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "naslock" in out
        assert "0.1.0" in out

    def test_version_flag(self, capsys):
        assert main(["--version"]) == 0
        assert "naslock" in capsys.readouterr().out

    def test_no_args(self, capsys):
        assert main([]) == 0
        assert "unlock" in capsys.readouterr().out

    def test_unknown_command(self):
        with pytest.raises(SystemExit) as exc:
            main(["frobnicate"])
        assert exc.value.code == 2

    def test_volumes(self, config_file, capsys):
        rc = main(["--config", str(config_file), "volumes"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "media" in out
        assert "tank/backup" in out
        assert "truenas.local" in out

    def test_config_from_env(self, config_file, monkeypatch, capsys):
        monkeypatch.setenv("NASLOCK_CONFIG", str(config_file))
        assert main(["volumes"]) == 0
        assert "tank/media" in capsys.readouterr().out

    def test_missing_config(self, tmp_path, clean_env, capsys):
        rc = main(["-c", str(tmp_path / "missing.toml"), "volumes"])
        assert rc == 3
        assert "Config file not found" in capsys.readouterr().err


class TestUnlockCommand:
    def run(self, config_file, *args):
        return main(["--config", str(config_file), "unlock", *args])

    def test_unlocked(self, config_file, capsys):
        outcome = UnlockOutcome(OutcomeKind.UNLOCKED, detail="unlocked datasets: tank/media")
        with patch("naslock.unlock.unlock_volume", return_value=outcome) as unlock:
            rc = self.run(config_file, "media")
        assert rc == 0
        assert unlock.call_args.args[1] == "media"
        assert "media: unlocked datasets: tank/media" in capsys.readouterr().out

    def test_already_unlocked(self, config_file, capsys):
        outcome = UnlockOutcome(OutcomeKind.ALREADY_UNLOCKED, detail="not locked")
        with patch("naslock.unlock.unlock_volume", return_value=outcome):
            rc = self.run(config_file, "tank/media")
        assert rc == 0
        assert "tank/media: already unlocked" in capsys.readouterr().out

    def test_unknown_volume(self, config_file, capsys):
        rc = self.run(config_file, "nope")
        assert rc == 3
        err = capsys.readouterr().err
        assert "Unknown volume 'nope'" in err
        assert "backup, media" in err

    @pytest.mark.parametrize(
        "error, code",
        [
            (VaultOpenError("Failed to open KeePass database", reason="credentials"), 4),
            (EntryNotFound("TrueNAS admin"), 5),
            (Unreachable("TrueNAS at https://truenas.local is unreachable"), 8),
        ],
    )
    def test_error_exit_codes(self, config_file, capsys, error, code):
        with patch("naslock.unlock.unlock_volume", side_effect=error):
            rc = self.run(config_file, "media")
        assert rc == code
        assert capsys.readouterr().err.startswith("Error: ")

    def test_interrupted(self, config_file, capsys):
        with patch("naslock.unlock.unlock_volume", side_effect=KeyboardInterrupt):
            rc = self.run(config_file, "media")
        assert rc == 130
        assert "Interrupted" in capsys.readouterr().err

    def test_unexpected_error(self, config_file, capsys):
        with patch("naslock.unlock.unlock_volume", side_effect=RuntimeError("boom")):
            rc = self.run(config_file, "media")
        assert rc == 1
        err = capsys.readouterr().err
        assert err.startswith("Error: RuntimeError: boom")
        assert "Traceback" not in err

    def test_bad_host_port_is_config_error(self, tmp_path, clean_env, capsys):
        path = tmp_path / "config.toml"
        path.write_text(CONFIG.replace('"truenas.local"', '"truenas.local:abc"'))
        credential = UsernamePassword(SecretBytes(b"root"), SecretBytes(b"pw"))

        def connect(cfg, name):
            return TrueNASClient(cfg.nas["main"].host, credential)

        with patch("naslock.unlock.unlock_volume", side_effect=connect):
            rc = main(["--config", str(path), "unlock", "media"])
        assert rc == 3
        err = capsys.readouterr().err
        assert err.startswith("Error: Invalid NAS host URL")
        assert "Traceback" not in err
