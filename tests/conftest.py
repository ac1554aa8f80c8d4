"""
Pytest configuration and fixtures for vm_provision tests.
"""

import subprocess
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional, Union

import pytest

from vm_provision.config import AppConfig, ProfileVariant
from vm_provision.context import RunContext
from vm_provision.errors import CommandError
from vm_provision.host import SystemHost
from vm_provision.runlog import RunLog


class FakeHost(SystemHost):
    """
    Host double: records commands instead of running them and answers state
    queries from its constructor arguments. File operations hit the real
    filesystem (tests point them at tmp_path) unless listed in fail_writes.
    """

    def __init__(
        self,
        version: str = "24.04",
        commands_present: Optional[Iterable[str]] = None,
        active_services: Optional[Iterable[str]] = None,
        failing: Optional[Dict[str, int]] = None,
        fail_writes: Iterable[str] = (),
    ) -> None:
        self.version = version
        self.present = None if commands_present is None else set(commands_present)
        self.active = None if active_services is None else set(active_services)
        self.failing = failing or {}
        self.fail_writes = set(fail_writes)
        self.commands: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.envs: List[Dict[str, str]] = []

    def which(self, name: str) -> Optional[str]:
        if self.present is None or name in self.present:
            return f"/usr/bin/{name}"
        return None

    def service_active(self, name: str) -> bool:
        return self.active is None or name in self.active

    def os_version(self) -> str:
        return self.version

    def run(
        self,
        cmd: List[str],
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        self.commands.append(list(cmd))
        self.inputs.append(input_text)
        self.envs.append(dict(env or {}))
        code = self.failing.get(" ".join(cmd)) or self.failing.get(cmd[0])
        if code:
            if check:
                raise CommandError(
                    f"Command failed with exit code {code}: {' '.join(cmd)}",
                    cmd=cmd,
                    returncode=code,
                )
            return subprocess.CompletedProcess(cmd, code, stdout="", stderr="")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def write_text(
        self, path: Union[str, Path], content: str, mode: Optional[int] = None
    ) -> None:
        if Path(path).name in self.fail_writes:
            raise OSError(f"No space left on device: '{path}'")
        super().write_text(path, content, mode)

    def ran(self, *prefix: str) -> bool:
        return any(cmd[: len(prefix)] == list(prefix) for cmd in self.commands)


@pytest.fixture
def variants() -> List[ProfileVariant]:
    return [
        ProfileVariant("profile1", "UA-one/1.0", "1920x1080"),
        ProfileVariant("profile2", "UA-two/2.0", "1366x768"),
    ]


@pytest.fixture
def config(tmp_path: Path, variants: List[ProfileVariant]) -> AppConfig:
    return AppConfig(
        log_dir=tmp_path / "log",
        xsession_files=[tmp_path / "skel" / ".xsession", tmp_path / "home" / ".xsession"],
        startwm_path=tmp_path / "xrdp" / "startwm.sh",
        keyring_file=tmp_path / "keyrings" / "login.keyring",
        firefox_pin_file=tmp_path / "preferences.d" / "mozilla-firefox",
        profile_dir=tmp_path / "firefox",
        shortcut_dir=tmp_path / "Desktop",
        shared_shortcut_dir=tmp_path / "FirefoxProfiles",
        shared_profiles_dir=tmp_path / "shared" / "FirefoxProfiles",
        snap_dirs=[tmp_path / "snap"],
        variants=variants,
    )


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def run_log() -> Generator[RunLog, None, None]:
    log = RunLog()
    yield log
    log.close()


@pytest.fixture
def ctx(config: AppConfig, run_log: RunLog, host: FakeHost) -> RunContext:
    return RunContext(config=config, log=run_log, host=host)
