import pydantic as p
from pydantic_settings import BaseSettings as PydanticBaseSettings
from pydantic_settings import PydanticBaseSettingsSource

from gradepush.model import BaseModel, DeploymentEnvironment

from .base import BaseSettings
from .extension import ExtensionSettings
from .logging import LoggingSettings
from .queue import QueueSettings
from .source import OverrideSettingsSource, YAMLCascadingSettingsSource
from .storage import StorageSettings
from .vendor import VendorSettings

# fields without a default must have a YAML file
Required = p.Field(default=..., validate_default=True)


# NOTE: we use multiple inheritance so that we can get our preferred model_dump
#       alias=True behavior from BaseModel
class Settings(BaseSettings, BaseModel):  # pyright: ignore [reportIncompatibleVariableOverride]
    """Application settings, one YAML file per field.

    `<root>/<field>.yaml` is read first, then `<root>/env.d/<env>/<field>.yaml` is
    merged over it, then `-o` overrides are applied on top.
    """

    root: p.FileUrl
    env: DeploymentEnvironment
    override: tuple[str, ...]

    logging: LoggingSettings = Required
    storage: StorageSettings = Required
    extension: ExtensionSettings = ExtensionSettings()
    queue: QueueSettings = QueueSettings()
    vendor: VendorSettings = Required

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[PydanticBaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:  # noqa: E501
        # earlier sources win; partial override dicts are deep-merged over the YAML
        return init_settings, OverrideSettingsSource(settings_cls), YAMLCascadingSettingsSource(settings_cls)
