from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource


class Settings(BaseSettings):
    APP_NAME: str = "FlowForge"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    DATA_PATH: str = "data/"
    STORE_BACKEND: str = "sqlite"
    RUN_HISTORY_LIMIT: int = 50
    EXECUTION_MODE: str = "sequential"
    MAX_PARALLEL_NODES: int = 4
    NODE_MIN_DELAY_MS: int = 300
    NODE_MAX_DELAY_MS: int = 1500
    FAULT_RATE: float = 0.0
    FAULT_SEED: int | None = None
    STRICT_PROPERTIES: bool = False
    CATALOG_PATH: str | None = None
    EVENT_LOG_PATH: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("DEBUG", mode="before")
    @classmethod
    def normalize_debug(cls, value: object) -> bool:
        if isinstance(value, bool):
            return value

        if isinstance(value, str):
            normalized = value.strip().lower()

            true_values = {"1", "true", "yes", "on", "dev", "debug", "development"}
            false_values = {"0", "false", "no", "off", "release", "prod", "production"}

            if normalized in true_values:
                return True
            if normalized in false_values:
                return False

            accepted = sorted(true_values | false_values)
            raise ValueError(
                "Invalid DEBUG value. Accepted values: "
                + ", ".join(accepted)
            )

        raise ValueError("Invalid DEBUG value type. Expected bool or string.")

    @field_validator("STORE_BACKEND", "EXECUTION_MODE", "LOG_LEVEL", mode="before")
    @classmethod
    def normalize_choice(cls, value: object) -> str:
        return str(value).strip()

    @field_validator("STORE_BACKEND")
    @classmethod
    def check_store_backend(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in {"sqlite", "memory"}:
            raise ValueError("Invalid STORE_BACKEND value. Accepted values: memory, sqlite")
        return normalized

    @field_validator("EXECUTION_MODE")
    @classmethod
    def check_execution_mode(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in {"sequential", "parallel"}:
            raise ValueError("Invalid EXECUTION_MODE value. Accepted values: parallel, sequential")
        return normalized

    @field_validator("RUN_HISTORY_LIMIT", "MAX_PARALLEL_NODES")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value

    @field_validator("FAULT_RATE")
    @classmethod
    def check_fault_rate(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("FAULT_RATE must be within [0.0, 1.0]")
        return value

    @model_validator(mode="after")
    def check_delay_range(self) -> "Settings":
        if self.NODE_MIN_DELAY_MS < 0 or self.NODE_MAX_DELAY_MS < self.NODE_MIN_DELAY_MS:
            raise ValueError("node delay range must satisfy 0 <= NODE_MIN_DELAY_MS <= NODE_MAX_DELAY_MS")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # init kwargs > .env file > OS environment > file secrets
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )
