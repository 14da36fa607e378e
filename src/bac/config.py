"""Engine settings: class defaults < TOML file < BAC_* environment < CLI.

Conversion choices (format, bitrate, preset...) are per-run command line
options and are not stored here.
"""
from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import tomlkit
from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


DEFAULT_CONFIG_PATH = Path("~/.config/batch-audio-converter/config.toml").expanduser()
ENV_PREFIX = "BAC_"

# TOML file read by the next BacSettings() built through load()
_toml_path: ContextVar[Optional[Path]] = ContextVar("bac_toml_path", default=None)


class BacSettings(BaseSettings):
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="JSON-lines log file; a run summary is written beside it")

    workers: int = Field(default=4, description="Parallel conversions")
    ffmpeg_path: Optional[str] = Field(default=None, description="ffmpeg binary (unset: PATH, then known locations)")
    ffprobe_path: Optional[str] = Field(default=None, description="ffprobe binary (unset: PATH, then known locations)")
    process_timeout_s: Optional[float] = Field(
        default=None, description="Kill an encoder still running after this many seconds (unset: wait)"
    )
    probe: bool = Field(default=True, description="Probe sources before converting")

    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @field_validator("workers")
    @classmethod
    def _workers_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v

    @field_validator("process_timeout_s")
    @classmethod
    def _timeout_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("process_timeout_s must be > 0")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        sources: Tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)
        path = _toml_path.get()
        if path is not None:
            sources += (TomlConfigSettingsSource(settings_cls, toml_file=path),)
        return sources

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "BacSettings":
        """Resolve settings from all sources.

        A missing config file is not an error. None values in `overrides`
        mean "not given on the command line" and are skipped.
        """
        path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
        given = {k: v for k, v in (overrides or {}).items() if v is not None}
        token = _toml_path.set(path)
        try:
            settings = cls(**given)
        finally:
            _toml_path.reset(token)
        settings.config_path = path
        return settings

    def to_toml(self) -> str:
        """Unset options are left out; each key carries its description as a comment."""
        doc = tomlkit.document()
        doc.add(tomlkit.comment("batch-audio-converter"))
        fields = type(self).model_fields
        for name, value in self.model_dump(exclude_none=True).items():
            item = tomlkit.item(value)
            if fields[name].description:
                item.comment(fields[name].description)
            doc.add(name, item)
        return tomlkit.dumps(doc)

    def write(self, path: Optional[Path] = None) -> Path:
        target = Path(path) if path else self.config_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Settings fields found on an argparse namespace, None included."""
    names = set(BacSettings.model_fields) - {"config_path"}
    return {k: v for k, v in vars(args).items() if k in names}
