from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import ValidationError

from doorkeeper.core.config.io import atomic_write_json, read_json_file
from doorkeeper.core.config.models import DoorkeeperConfig
from doorkeeper.core.errors import ConfigError

DEFAULT_CONFIG_PATH = os.path.join("config", "doorkeeper.json")


class ConfigManager:
    def __init__(self, *, path: str = DEFAULT_CONFIG_PATH, logger: Optional[logging.Logger] = None, read_only: bool = False):
        self.path = path
        self.logger = logger
        self.read_only = read_only
        self._cfg: Optional[DoorkeeperConfig] = None

    def load(self) -> DoorkeeperConfig:
        """
        Read and validate the config file.

        A missing file yields defaults (written back unless read-only). A
        corrupt or invalid file is fatal: guessing at door policy is worse
        than refusing to start.
        """
        rr = read_json_file(self.path)
        if not rr.ok and rr.error == "missing":
            cfg = DoorkeeperConfig()
            if not self.read_only:
                atomic_write_json(self.path, cfg.model_dump(mode="json"))
                if self.logger:
                    self.logger.info(f"Wrote default config to {self.path}")
            self._cfg = cfg
            return cfg
        if not rr.ok:
            raise ConfigError("Config file unreadable.", path=self.path, error=rr.error)
        try:
            cfg = DoorkeeperConfig.model_validate(rr.data)
        except ValidationError as e:
            raise ConfigError("Config file invalid.", path=self.path, errors=e.errors(include_url=False)) from e
        self._cfg = cfg
        return cfg

    def get(self) -> DoorkeeperConfig:
        if self._cfg is None:
            return self.load()
        return self._cfg

    def save(self, cfg: DoorkeeperConfig) -> None:
        if self.read_only:
            raise ConfigError("Config is read-only.", path=self.path)
        atomic_write_json(self.path, cfg.model_dump(mode="json"))
        self._cfg = cfg

    @property
    def base_dir(self) -> str:
        """Directory that relative paths in the config (user_file, audit.path) are resolved against."""
        return os.path.dirname(os.path.dirname(os.path.abspath(self.path)))
