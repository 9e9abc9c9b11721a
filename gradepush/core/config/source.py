import functools
import getpass
import os
import typing as t
from pathlib import Path

import pydantic as p
import yaml
from ansible.parsing.vault import VaultLib, VaultSecret
from pydantic_settings import PydanticBaseSettingsSource, SettingsError

import gradepush.lib.util as util
from gradepush.model import DeploymentEnvironment

VaultPasswordVariable = "GRADEPUSH_VAULT_PASSWORD"
VaultFilename = "secrets.vault.yaml"

# populated from init kwargs, never from files
BootKeys = frozenset({"env", "root", "override"})


class CurrentState(t.TypedDict, total=False):
    root: t.Required[p.AnyUrl]
    env: t.Required[DeploymentEnvironment]


class SettingsCurrentState(CurrentState, total=False):
    override: t.Required[tuple[str, ...]]


def env_path(root: p.AnyUrl, env: DeploymentEnvironment) -> list[Path]:
    """Directories searched for YAML files, least specific first."""
    assert root.scheme == "file" and root.path is not None, "root is not a legible location of YAML files"
    base = Path(root.path)
    if env is DeploymentEnvironment.Local:
        return [base]
    return [base, base / "env.d" / env.value]


def parse_overrides(options: t.Iterable[str]) -> dict[str, t.Any]:
    """Turn `a.b.c=value` strings into a nested dict; values are parsed as YAML scalars."""
    parsed: dict[str, t.Any] = {}
    for option in options:
        key, sep, raw = option.partition("=")
        if not sep:
            raise ValueError(f"override must look like key=value: {option!r}")
        *parents, leaf = key.strip().split(".")
        node = parsed
        for name in parents:
            node = node.setdefault(name, {})
        node[leaf] = yaml.safe_load(raw.strip())
    return parsed


class SettingsSource(PydanticBaseSettingsSource):
    """Base for sources which find each field's value by name.

    Subclasses implement `read`, raising KeyError when they have nothing for a field.
    """

    @property
    def state(self) -> SettingsCurrentState:
        return t.cast(SettingsCurrentState, self.current_state)

    def read(self, field_name: str) -> t.Any:
        raise NotImplementedError

    def get_field_value(self, field: p.fields.FieldInfo, field_name: str) -> tuple[t.Any, str, bool]:
        value = self.read(field_name)
        return value, field_name, isinstance(value, dict)

    def prepare_field_value(
        self, field_name: str, field: p.fields.FieldInfo, value: t.Any, value_is_complex: bool
    ) -> t.Any:
        return value

    def __call__(self) -> dict[str, t.Any]:
        data: dict[str, t.Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            if field_name in BootKeys:
                continue
            try:
                value, key, is_complex = self.get_field_value(field, field_name)
            except KeyError:
                continue
            except ValueError as e:
                raise SettingsError(f"error parsing value for field {field_name!r} from source {self!r}") from e
            data[key] = self.prepare_field_value(field_name, field, value, is_complex)
        return data


class YAMLCascadingSettingsSource(SettingsSource):
    """Read `<field>.yaml` from the config root, deep-merging the env.d overlay on top."""

    @functools.cached_property
    def load_paths(self) -> list[Path]:
        return env_path(self.state["root"], self.state["env"])

    def read(self, field_name: str) -> t.Any:
        found = [path / f"{field_name}.yaml" for path in self.load_paths]
        documents = [yaml.safe_load(fn.read_text(encoding="utf8")) for fn in found if fn.exists()]
        if not documents:
            raise KeyError(field_name)

        merged = documents[0]
        for overlay in documents[1:]:
            if isinstance(merged, dict) and isinstance(overlay, dict):
                merged = util.deep_update(t.cast(dict[t.Any, t.Any], merged), t.cast(dict[t.Any, t.Any], overlay))
            else:
                merged = overlay
        return merged


class OverrideSettingsSource(SettingsSource):
    """Partial values from `-o dotted.key=value` pairs; only the named keys are present."""

    @functools.cached_property
    def overrides(self) -> dict[str, t.Any]:
        return parse_overrides(self.state["override"])

    def read(self, field_name: str) -> t.Any:
        return self.overrides[field_name]


class AnsibleVaultSecretsSource(SettingsSource):
    """Secrets decrypted from the environment's vault file; empty when there is none."""

    @functools.cached_property
    def vault_path(self) -> Path:
        return env_path(self.state["root"], self.state["env"])[-1] / VaultFilename

    @functools.cached_property
    def secrets(self) -> dict[str, t.Any]:
        if not self.vault_path.exists():
            return {}

        password = os.environ.get(VaultPasswordVariable) or getpass.getpass(
            f"provide vault key ({self.state['env'].value}:{VaultFilename}) "
        )
        # None is the vault-id
        vault = VaultLib(secrets=[(None, VaultSecret(password.encode()))])
        plaintext = vault.decrypt(self.vault_path.read_bytes())
        return yaml.safe_load(plaintext) or {}

    def read(self, field_name: str) -> t.Any:
        return self.secrets[field_name]
