from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PretendSettings(BaseModel):
    enabled: bool = False
    options: dict[str, bool] = Field(
        default_factory=lambda: {"is": False, "can": False, "allowed": False, "has": False}
    )


class ModelSettings(BaseModel):
    role: str = "roleguard.authz.models.Role"
    permission: str = "roleguard.authz.models.Permission"


class RolesSettings(BaseSettings):
    app_name: str = "roleguard"
    separator: str = Field(default=".", min_length=1, max_length=1)
    database_url: str = "sqlite+pysqlite:///:memory:"
    otel_enabled: bool = False
    pretend: PretendSettings = Field(default_factory=PretendSettings)
    models: ModelSettings = Field(default_factory=ModelSettings)

    model_config = SettingsConfigDict(
        env_prefix="ROLES_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> RolesSettings:
    return RolesSettings()
