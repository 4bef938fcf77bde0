"""Configuration settings for an incremental store working directory."""

import hashlib
import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common.constants import (
    BOUNDARY_BITS,
    CONFIG_FILE_NAME,
    DATABASE_FILE_NAME,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_WORKDIR,
    MAX_CHUNK_SIZE_BYTES,
    MIN_CHUNK_SIZE_BYTES,
    READ_BLOCK_SIZE_BYTES,
    ROLLING_WINDOW_BYTES,
    WORKDIR_ENV_VAR,
)
from common.exceptions import ConfigMismatchError, StorageIOError

# Parameters that change chunk boundaries or fingerprints; fixed per workdir.
PERSISTED_FIELDS = (
    "min_chunk_size",
    "max_chunk_size",
    "boundary_bits",
    "window_size",
    "hash_algorithm",
)


def _read_persisted(path: Path) -> dict:
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise StorageIOError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigMismatchError(f"Unreadable store parameters in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigMismatchError(f"Unreadable store parameters in {path}")
    return {name: data[name] for name in PERSISTED_FIELDS if name in data}


class StoreConfig(BaseModel):
    """
    Settings for one store. Passed explicitly to every component so several
    independent stores can coexist in one process.
    """

    model_config = ConfigDict(frozen=True)

    workdir: Path = Field(default=Path(DEFAULT_WORKDIR))
    min_chunk_size: int = Field(default=MIN_CHUNK_SIZE_BYTES, gt=0)
    max_chunk_size: int = Field(default=MAX_CHUNK_SIZE_BYTES, gt=0)
    boundary_bits: int = Field(default=BOUNDARY_BITS, ge=0, le=31)
    window_size: int = Field(default=ROLLING_WINDOW_BYTES, ge=1)
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    hash_workers: int = Field(default=1, ge=1)
    fsync: bool = True
    read_block_size: int = Field(default=READ_BLOCK_SIZE_BYTES, gt=0)

    @field_validator("hash_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        value = value.lower()
        if value not in hashlib.algorithms_guaranteed or value.startswith("shake_"):
            raise ValueError(f"unsupported hash algorithm: {value}")
        return value

    @model_validator(mode="after")
    def _check_sizes(self) -> "StoreConfig":
        if self.min_chunk_size > self.max_chunk_size:
            raise ValueError("min_chunk_size must not exceed max_chunk_size")
        if self.window_size > self.min_chunk_size:
            raise ValueError("window_size must not exceed min_chunk_size")
        return self

    @property
    def config_path(self) -> Path:
        return self.workdir / CONFIG_FILE_NAME

    @property
    def database_path(self) -> Path:
        return self.workdir / DATABASE_FILE_NAME

    def chunking_parameters(self) -> dict:
        return {name: getattr(self, name) for name in PERSISTED_FIELDS}

    @classmethod
    def from_env(cls, workdir: Optional[str] = None, **overrides) -> "StoreConfig":
        """
        Build a config for `workdir`, falling back to INCRESTORE_WORKDIR and
        then to the default `data` directory. Parameters persisted in the
        workdir take precedence over defaults.
        """
        if workdir is None:
            workdir = os.environ.get(WORKDIR_ENV_VAR, DEFAULT_WORKDIR)
        return cls.load(Path(workdir), **overrides)

    @classmethod
    def load(cls, workdir: Path, **overrides) -> "StoreConfig":
        """
        Load persisted chunking parameters from `workdir` if present.
        """
        config_path = Path(workdir) / CONFIG_FILE_NAME
        data = {}
        if config_path.is_file():
            data = _read_persisted(config_path)
        data.update(overrides)
        data["workdir"] = Path(workdir)
        return cls(**data)

    def ensure_persisted(self) -> None:
        """
        Write chunking parameters on first use; verify them on later opens.

        Raises:
            ConfigMismatchError: If the workdir was created with other parameters
        """
        if self.config_path.is_file():
            stored = _read_persisted(self.config_path)
            mismatched = {
                name: (stored.get(name), getattr(self, name))
                for name in PERSISTED_FIELDS
                if stored.get(name) != getattr(self, name)
            }
            if mismatched:
                details = ", ".join(
                    f"{name}: stored={old!r} requested={new!r}"
                    for name, (old, new) in mismatched.items()
                )
                raise ConfigMismatchError(
                    f"Workdir {self.workdir} uses different chunking parameters ({details})"
                )
            return

        temp_path = self.config_path.with_suffix(".json.tmp")
        try:
            self.workdir.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(json.dumps(self.chunking_parameters(), indent=2))
            os.replace(temp_path, self.config_path)
        except OSError as e:
            raise StorageIOError(f"Cannot write {self.config_path}: {e}") from e
