"""
Host access: every external command, state query and file write made by a
provisioning step goes through a Host so that runs can be dry-run or faked.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import CommandError, PreconditionError

logger = logging.getLogger("vm_provision.host")


class SystemHost:
    """The machine being provisioned."""

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def service_active(self, name: str) -> bool:
        result = subprocess.run(
            ["systemctl", "is-active", "--quiet", name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        return result.returncode == 0

    def os_version(self) -> str:
        version = self.run(["lsb_release", "-rs"]).stdout.strip()
        if not version:
            raise PreconditionError("lsb_release reported no release number")
        return version

    def run(
        self,
        cmd: List[str],
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """
        Run a command with the given extra environment.

        Raises:
            CommandError: If the command cannot be started, or exits non-zero
                and check is True.
        """
        cmd_str = " ".join(cmd)
        logger.debug(f"Running command: {cmd_str}")
        full_env = os.environ.copy()
        if env:
            full_env.update(env)
        try:
            result = subprocess.run(
                cmd,
                env=full_env,
                input=input_text,
                text=True,
                capture_output=True,
                check=False,
            )
        except OSError as e:
            raise CommandError(f"Could not execute {cmd_str}: {e}", cmd=cmd) from e
        if result.returncode != 0:
            if result.stderr:
                logger.debug(f"Stderr: {result.stderr.strip()}")
            if check:
                raise CommandError(
                    f"Command failed with exit code {result.returncode}: {cmd_str}",
                    cmd=cmd,
                    returncode=result.returncode,
                    stderr=result.stderr or "",
                )
        return result

    def write_text(
        self, path: Union[str, Path], content: str, mode: Optional[int] = None
    ) -> None:
        """Create or overwrite a file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        if mode is not None:
            path.chmod(mode)

    def read_text(self, path: Union[str, Path]) -> Optional[str]:
        path = Path(path)
        if not path.is_file():
            return None
        return path.read_text()

    def make_dirs(self, path: Union[str, Path], mode: Optional[int] = None) -> None:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        if mode is not None:
            path.chmod(mode)

    def remove_tree(self, path: Union[str, Path]) -> None:
        path = Path(path)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()


class DryRunHost(SystemHost):
    """
    Logs what would be done instead of doing it. State queries report a
    host that is already in the desired state.
    """

    def __init__(self, assume_version: str) -> None:
        self.assume_version = assume_version
        self.commands: List[List[str]] = []

    def which(self, name: str) -> Optional[str]:
        return f"/usr/bin/{name}"

    def service_active(self, name: str) -> bool:
        return True

    def os_version(self) -> str:
        return self.assume_version

    def run(
        self,
        cmd: List[str],
        env: Optional[Dict[str, str]] = None,
        input_text: Optional[str] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        self.commands.append(list(cmd))
        logger.info(f"[dry-run] {' '.join(cmd)}")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def read_text(self, path: Union[str, Path]) -> Optional[str]:
        try:
            content = super().read_text(path)
        except OSError as e:
            logger.info(f"[dry-run] cannot read {path}: {e}")
            return ""
        return "" if content is None else content

    def write_text(
        self, path: Union[str, Path], content: str, mode: Optional[int] = None
    ) -> None:
        logger.info(f"[dry-run] write {path} ({len(content)} bytes)")

    def make_dirs(self, path: Union[str, Path], mode: Optional[int] = None) -> None:
        logger.info(f"[dry-run] mkdir -p {path}")

    def remove_tree(self, path: Union[str, Path]) -> None:
        logger.info(f"[dry-run] rm -rf {path}")
