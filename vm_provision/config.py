"""
Configuration for a provisioning run.

Values are layered: dataclass defaults, then an optional JSON file, then
VM_PROVISION_* environment variables, then command-line flags.
"""

import dataclasses
import json
import os
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ConfigError

ENV_PREFIX = "VM_PROVISION_"
DEFAULT_LOG_DIR = Path("/var/log")


@dataclass(frozen=True)
class ProfileVariant:
    """One browser profile: its name, user agent and nominal resolution."""

    name: str
    user_agent: str
    resolution: str = "1920x1080"


DEFAULT_VARIANTS: List[ProfileVariant] = [
    ProfileVariant(
        "profile1",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:92.0) Gecko/20100101 Firefox/92.0",
        "1920x1080",
    ),
    ProfileVariant(
        "profile2",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:93.0) Gecko/20100101 Firefox/93.0",
        "1366x768",
    ),
    ProfileVariant(
        "profile3",
        "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:94.0) Gecko/20100101 Firefox/94.0",
        "1280x1024",
    ),
    ProfileVariant(
        "profile4",
        "Mozilla/5.0 (Windows NT 10.0; WOW64; rv:91.0) Gecko/20100101 Firefox/91.0",
        "1600x900",
    ),
    ProfileVariant(
        "profile5",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0 Safari/537.36",
        "1024x768",
    ),
]


@dataclass
class AppConfig:
    # Logging
    log_dir: Path = DEFAULT_LOG_DIR
    log_file: str = "provision_script.log"
    checkpoint_log: str = "provision_checkpoints.log"
    error_log: str = "provision_errors.log"

    # Host expectations
    os_version: str = "24.04"
    plan: str = "xfce-xrdp"

    # Desktop and remote access
    session_command: str = "startxfce4"
    xsession_files: List[Path] = field(
        default_factory=lambda: [Path("/etc/skel/.xsession"), Path.home() / ".xsession"]
    )
    startwm_path: Path = Path("/etc/xrdp/startwm.sh")
    gui_display: str = ":10"
    keyring_file: Path = Path("/root/.local/share/keyrings/login.keyring")
    nomachine_url: str = (
        "https://download.nomachine.com/download/8.14/Linux/nomachine_8.14.2_1_amd64.deb"
    )
    nomachine_deb: Path = Path("/tmp/nomachine.deb")

    # Firefox
    mozilla_ppa: str = "ppa:mozillateam/ppa"
    firefox_pin_file: Path = Path("/etc/apt/preferences.d/mozilla-firefox")
    profile_dir: Path = Path("/root/.mozilla/firefox")
    shortcut_dir: Path = field(default_factory=lambda: Path.home() / "Desktop")
    shared_shortcut_dir: Path = Path("/home/FirefoxProfiles")
    shared_profiles_dir: Path = Path("/home/shared/FirefoxProfiles")
    variants: List[ProfileVariant] = field(default_factory=lambda: list(DEFAULT_VARIANTS))
    shuffle_user_agents: bool = False
    seed: Optional[int] = None

    # Snap removal
    snap_dirs: List[Path] = field(
        default_factory=lambda: [Path("/var/cache/snapd"), Path("/snap")]
    )

    dry_run: bool = False

    def __post_init__(self) -> None:
        names = [v.name for v in self.variants]
        if any(not n for n in names):
            raise ConfigError("Profile variant names must not be empty.")
        if len(set(names)) != len(names):
            raise ConfigError(f"Duplicate profile variant names: {names}")

    @property
    def combined_log_path(self) -> Path:
        return Path(self.log_dir) / self.log_file

    @property
    def checkpoint_log_path(self) -> Path:
        return Path(self.log_dir) / self.checkpoint_log

    @property
    def error_log_path(self) -> Path:
        return Path(self.log_dir) / self.error_log

    def effective_variants(self) -> List[ProfileVariant]:
        """Variants with user agents reassigned when shuffling is enabled."""
        if not self.shuffle_user_agents:
            return list(self.variants)
        return assign_user_agents(self.variants, self.seed)

    # ----------------------------------------------------------------
    # Loading
    # ----------------------------------------------------------------
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        return cls().with_overrides(**data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AppConfig":
        path = Path(path)
        try:
            data = json.loads(path.read_text())
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object.")
        return cls.from_mapping(data)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for key in ("plan", "log_dir", "profile_dir", "shortcut_dir", "os_version"):
            value = environ.get(ENV_PREFIX + key.upper())
            if value:
                overrides[key] = value
        return self.with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> "AppConfig":
        known = {f.name: f for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - set(known))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        values: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None and key != "seed":
                continue
            values[key] = _coerce(key, value)
        return dataclasses.replace(self, **values)


_PATH_FIELDS = {
    "log_dir",
    "startwm_path",
    "keyring_file",
    "nomachine_deb",
    "firefox_pin_file",
    "profile_dir",
    "shortcut_dir",
    "shared_shortcut_dir",
    "shared_profiles_dir",
}
_PATH_LIST_FIELDS = {"xsession_files", "snap_dirs"}
_BOOL_FIELDS = {"shuffle_user_agents", "dry_run"}


def _coerce(key: str, value: Any) -> Any:
    if key in _PATH_FIELDS:
        return _path(key, value)
    if key in _PATH_LIST_FIELDS:
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"{key} must be a list of paths, got {value!r}")
        return [_path(key, p) for p in value]
    if key == "variants":
        if not isinstance(value, (list, tuple)):
            raise ConfigError(f"variants must be a list of objects, got {value!r}")
        return [_variant(v) for v in value]
    if key in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false, got {value!r}")
        return value
    if key == "seed":
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigError(f"seed must be an integer, got {value!r}")
        return value
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {value!r}")
    return value


def _path(key: str, value: Any) -> Path:
    if not isinstance(value, (str, os.PathLike)) or not str(value):
        raise ConfigError(f"{key} must be a non-empty path, got {value!r}")
    return Path(value)


def _variant(value: Any) -> ProfileVariant:
    if isinstance(value, ProfileVariant):
        return value
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid profile variant {value!r}: expected an object")
    try:
        variant = ProfileVariant(**value)
    except TypeError as e:
        raise ConfigError(f"Invalid profile variant {value!r}: {e}") from e
    if not all(isinstance(v, str) for v in dataclasses.astuple(variant)):
        raise ConfigError(f"Invalid profile variant {value!r}: values must be strings")
    return variant


def assign_user_agents(
    variants: List[ProfileVariant], seed: Optional[int] = None
) -> List[ProfileVariant]:
    agents = [v.user_agent for v in variants]
    random.Random(seed).shuffle(agents)
    return [dataclasses.replace(v, user_agent=ua) for v, ua in zip(variants, agents)]
