########## ini_config.py

from __future__ import annotations

import os
import shutil
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

INI_DEFAULT_NAME = "manual_build.ini"
INI_ENV_VAR = "MANUAL_BUILD_INI"

DEFAULT_BROWSERS = ("> 1%", "last 2 versions", "ie >= 11")


@dataclass(frozen=True)
class AppSettings:
    root: Path

    host: str
    start_port: int
    port_attempts: int

    sass_bin: str
    postcss_bin: str
    esbuild_bin: str
    load_path: Path
    browsers: tuple[str, ...]

    log_level: str
    log_file: Optional[Path]


class IniConfig:
    """
    Adapter around ConfigParser and filesystem resolution.
    Keeps INI handling out of the watcher/build code.
    """

    def __init__(self, ini_path: Optional[Path], root: Path, *, required: bool = True):
        self._ini_path = ini_path
        self._root = root
        # browserslist queries contain "%", so no interpolation
        self._cfg = ConfigParser(interpolation=None)
        if ini_path is not None:
            read_ok = self._cfg.read(str(ini_path), encoding="utf-8-sig")
            if not read_ok and required:
                raise FileNotFoundError(f"INI file not found or unreadable: {ini_path}")

    @staticmethod
    def from_env_or_default(root: Optional[Path] = None, explicit: Optional[Path] = None) -> "IniConfig":
        root = (root or Path.cwd()).resolve()
        if explicit is not None:
            return IniConfig(Path(explicit), root)

        ini_raw = (os.getenv(INI_ENV_VAR) or "").strip()
        if ini_raw:
            return IniConfig(Path(ini_raw), root)

        # No file named anywhere: a missing default file just means "all defaults"
        return IniConfig(root / INI_DEFAULT_NAME, root, required=False)

    def _get_str(self, section: str, key: str, default: str) -> str:
        return (self._cfg.get(section, key, fallback=default) or "").strip() or default

    def _tool(self, key: str) -> str:
        """
        Reads a tool command from [tools]. Bare names prefer the project's
        node_modules/.bin copy, then PATH.
        """
        raw = self._get_str("tools", key, key)
        raw = os.path.expandvars(os.path.expanduser(raw))
        if os.sep in raw or (os.altsep and os.altsep in raw):
            path = Path(raw)
            return str(path if path.is_absolute() else (self._root / path).resolve())

        local = self._root / "node_modules" / ".bin" / raw
        if local.exists():
            return str(local)
        return shutil.which(raw) or raw

    def load_settings(self) -> AppSettings:
        # Server
        host = self._get_str("server", "host", "localhost")
        start_port = self._cfg.getint("server", "start_port", fallback=3000)
        port_attempts = self._cfg.getint("server", "port_attempts", fallback=100)

        # Tools
        load_path_raw = self._get_str("tools", "load_path", "node_modules")
        load_path = Path(os.path.expandvars(os.path.expanduser(load_path_raw)))
        if not load_path.is_absolute():
            load_path = self._root / load_path

        # Autoprefixer targets
        browsers_raw = self._cfg.get("autoprefixer", "browsers", fallback="") or ""
        browsers = tuple(b.strip() for b in browsers_raw.split(",") if b.strip()) or DEFAULT_BROWSERS

        # Logging
        log_level = self._get_str("logging", "level", "WARNING").upper()
        log_file_raw = (self._cfg.get("logging", "file", fallback="") or "").strip()
        log_file = None
        if log_file_raw:
            log_file = Path(os.path.expandvars(os.path.expanduser(log_file_raw)))
            if not log_file.is_absolute():
                log_file = self._root / log_file

        # Validate
        if not 0 < start_port < 65536:
            raise ValueError(f"[server] start_port out of range: {start_port}")
        if port_attempts < 1:
            raise ValueError(f"[server] port_attempts must be positive: {port_attempts}")

        return AppSettings(
            root=self._root,
            host=host,
            start_port=start_port,
            port_attempts=port_attempts,
            sass_bin=self._tool("sass"),
            postcss_bin=self._tool("postcss"),
            esbuild_bin=self._tool("esbuild"),
            load_path=load_path,
            browsers=browsers,
            log_level=log_level,
            log_file=log_file,
        )
