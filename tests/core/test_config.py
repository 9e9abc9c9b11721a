"""Tests for gradepush.core.config package."""

from __future__ import annotations

import shutil
from pathlib import Path

from ansible.parsing.vault import VaultLib, VaultSecret
import pydantic as p
from pydantic_settings import SettingsError
import pytest
import yaml

from gradepush.core.config import ExtensionSettings, Secrets, Settings
from gradepush.core.config.source import VaultPasswordVariable
from gradepush.model import DeploymentEnvironment

ConfigRoot = Path(__file__).parents[2] / "config"


@pytest.fixture
def config_root(tmp_path: Path) -> Path:
    for fn in ConfigRoot.glob("*.yaml"):
        shutil.copy(fn, tmp_path / fn.name)
    staging = tmp_path / "env.d" / "staging"
    staging.mkdir(parents=True)
    (staging / "extension.yaml").write_text("deadline_group_prefix: DLG-\nclosure_days: [2025-12-25]\n")
    (staging / "vendor.yaml").write_text("sits:\n  limit: 500\n")
    return tmp_path


def load(root: Path, env: DeploymentEnvironment, *override: str) -> Settings:
    return Settings(root=root.as_uri(), env=env, override=override)  # pyright: ignore [reportArgumentType]


class TestYAMLCascade(object):
    def test_root_only_for_local(self, config_root: Path) -> None:
        """The local environment reads the root config and nothing else."""
        settings = load(config_root, DeploymentEnvironment.Local)

        assert settings.extension.deadline_group_prefix == ""
        assert settings.vendor.sits.limit == 2000
        assert settings.storage.persistent.postgresql.database == "gradepush"

    def test_env_overlay_merges(self, config_root: Path) -> None:
        """The env.d documents are merged key by key over the root, not swapped in whole."""
        settings = load(config_root, DeploymentEnvironment.Staging)

        assert settings.extension.deadline_group_prefix == "DLG-"
        assert [d.isoformat() for d in settings.extension.closure_days] == ["2025-12-25"]
        assert settings.extension.timezone == "Europe/London"
        assert settings.vendor.sits.limit == 500
        assert str(settings.vendor.sits.base_url) == "http://localhost:8080/sits/"

    def test_checked_in_test_environment(self) -> None:
        """The test environment shipped with the project loads."""
        settings = load(ConfigRoot, DeploymentEnvironment.Test)

        assert settings.storage.persistent.postgresql.database == "gradepush_test"
        assert settings.storage.persistent.postgresql.host == "localhost"
        assert settings.queue.raa.url is not None
        assert settings.queue.wait_time_seconds == 0


class TestOverrides(object):
    def test_dotted_keys(self, config_root: Path) -> None:
        """Dotted overrides set nested values and parse YAML values."""
        settings = load(
            config_root,
            DeploymentEnvironment.Staging,
            "extension.api_attempts=5",
            "extension.raa_ast_codes=[EX, CW]",
            "queue.max_attempts = 4",
        )

        assert settings.extension.api_attempts == 5
        assert settings.extension.raa_ast_codes == frozenset({"EX", "CW"})
        assert settings.queue.max_attempts == 4
        # siblings from the YAML survive
        assert settings.extension.deadline_group_prefix == "DLG-"

    def test_requires_equals(self, config_root: Path) -> None:
        """An override without a value is an error."""
        with pytest.raises((ValueError, SettingsError)):
            load(config_root, DeploymentEnvironment.Local, "extension.enabled")

    def test_values_still_validated(self, config_root: Path) -> None:
        """Overridden values go through the same validation as the YAML."""
        with pytest.raises(p.ValidationError):
            load(config_root, DeploymentEnvironment.Local, "extension.api_attempts=0")


class TestExtensionSettings(object):
    def test_unknown_timezone(self) -> None:
        """Timezones are checked against the tz database."""
        with pytest.raises(p.ValidationError):
            ExtensionSettings(timezone="Europe/Atlantis")

    def test_tzinfo(self) -> None:
        """The configured timezone name gives a usable tzinfo."""
        assert ExtensionSettings(timezone="Asia/Tokyo").tzinfo.key == "Asia/Tokyo"

    @pytest.mark.parametrize(
        "codes,ast_code,eligible",
        [
            (frozenset(), None, True),
            (frozenset(), "CW", True),
            (frozenset({"EX"}), "EX", True),
            (frozenset({"EX"}), " EX ", True),
            (frozenset({"EX"}), "CW", False),
            (frozenset({"EX"}), None, False),
        ],
    )
    def test_ast_code_eligibility(self, codes: frozenset[str], ast_code: str | None, eligible: bool) -> None:
        """An empty code set admits every assessment type."""
        assert ExtensionSettings(raa_ast_codes=codes).is_ast_code_eligible(ast_code) is eligible


class TestVaultSecrets(object):
    def test_no_vault_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a vault file there is nothing to unlock, so no password is asked for."""
        monkeypatch.delenv(VaultPasswordVariable, raising=False)
        secrets = Secrets(root=tmp_path.as_uri(), env=DeploymentEnvironment.Local)  # pyright: ignore [reportArgumentType]

        assert secrets.sits.reveal("token") is None
        assert secrets.aws.reveal("access_key_id") is None

    def test_decrypts_env_vault(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """The environment's vault is decrypted with the password from the environment."""
        env_dir = tmp_path / "env.d" / "staging"
        env_dir.mkdir(parents=True)
        plaintext = yaml.safe_dump({"sits": {"token": "s3cret"}, "postgresql": {"username": "gradepush"}})
        vault = VaultLib(secrets=[(None, VaultSecret(b"hunter2"))])
        (env_dir / "secrets.vault.yaml").write_bytes(vault.encrypt(plaintext))
        monkeypatch.setenv(VaultPasswordVariable, "hunter2")

        secrets = Secrets(root=tmp_path.as_uri(), env=DeploymentEnvironment.Staging)  # pyright: ignore [reportArgumentType]

        assert secrets.sits.reveal("token") == "s3cret"
        assert secrets.postgresql.reveal("username") == "gradepush"
        assert secrets.postgresql.reveal("password") is None
