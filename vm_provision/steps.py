"""
Provisioning step builders.

Every function here returns a Step. Builders take their parameters when the
plan is assembled; the returned actions only touch the system through the
RunContext they are handed.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from . import artifacts
from .checks import (
    VerificationCheck,
    command_present,
    service_active,
    verify_os_version,
)
from .config import ProfileVariant
from .context import RunContext
from .errors import CommandError
from .runner import Step, StepAction, StepOutcome, StepPolicy

logger = logging.getLogger("vm_provision.steps")

# A command, or a command with text for its stdin.
Command = Union[List[str], Tuple[List[str], str]]

MOZILLA_PIN = """\
Package: *
Pin: release o=LP-PPA-mozillateam
Pin-Priority: 1001
"""

LOGIN_KEYRING = """\
[org.freedesktop.Secret.Collection.Login]
Name=Login
DefaultCollection=true
Unlocked=true
"""


# ----------------------------------------------------------------
# Action Helpers
# ----------------------------------------------------------------
def run_checks(ctx: RunContext, checks: Sequence[VerificationCheck]) -> StepOutcome:
    for check in checks:
        outcome = check.evaluate(ctx.host, ctx.log)
        if not outcome:
            return outcome
    return StepOutcome.ok()


def run_commands(
    ctx: RunContext, commands: Sequence[Command], failure: str
) -> Optional[StepOutcome]:
    """Run commands in order; return an error outcome for the first failure."""
    for command in commands:
        if isinstance(command, tuple):
            cmd, stdin = command
        else:
            cmd, stdin = command, None
        try:
            ctx.run(cmd, input_text=stdin)
        except CommandError as e:
            if e.stderr:
                logger.debug(f"{' '.join(cmd)}: {e.stderr.strip()}")
            return StepOutcome.err(f"{failure} ({e})")
    return None


def command_action(
    commands: Sequence[Command],
    failure: str,
    checks: Sequence[VerificationCheck] = (),
) -> StepAction:
    def action(ctx: RunContext) -> StepOutcome:
        error = run_commands(ctx, commands, failure)
        if error is not None:
            return error
        return run_checks(ctx, checks)

    return action


def command_step(
    name: str,
    commands: Sequence[Command],
    failure: str,
    checks: Sequence[VerificationCheck] = (),
    policy: StepPolicy = StepPolicy.FATAL,
    description: str = "",
) -> Step:
    return Step(name, command_action(commands, failure, checks), policy, description)


# ----------------------------------------------------------------
# Preconditions and Package Management
# ----------------------------------------------------------------
def check_os_version(expected: str) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        return verify_os_version(expected, ctx.host, ctx.log)

    return Step("check-os-version", action, description="Checking operating system version")


def configure_pending_packages() -> Step:
    return command_step(
        "configure-pending-packages",
        [["dpkg", "--configure", "-a"]],
        "Failed to configure partially installed packages.",
        description="Configuring any partially installed packages",
    )


def update_package_lists(name: str = "update-package-lists") -> Step:
    return command_step(
        name,
        [["apt-get", "update", "-y"]],
        "Failed to update package lists.",
        description="Updating package lists",
    )


def install_packages(
    name: str,
    packages: Sequence[str],
    verify_commands: Sequence[str] = (),
    failure: Optional[str] = None,
) -> Step:
    return command_step(
        name,
        [["apt-get", "install", "-y", *packages]],
        failure or f"Failed to install {', '.join(packages)}.",
        [command_present(c) for c in verify_commands],
        description=f"Installing {' '.join(packages)}",
    )


def purge_snap() -> Step:
    return command_step(
        "purge-snap",
        [["apt-get", "purge", "-y", "snapd"]],
        "Snap is already removed; skipping.",
        policy=StepPolicy.WARN_AND_CONTINUE,
        description="Removing Snap to prevent conflicts with Firefox",
    )


def remove_snap_dirs(paths: Sequence[Path]) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        for path in paths:
            path = Path(path)
            if not path.is_absolute() or path == Path(path.anchor):
                return StepOutcome.err(
                    f"Refusing to remove Snap directory {str(path)!r}."
                )
        for path in paths:
            try:
                ctx.host.remove_tree(path)
            except OSError as e:
                return StepOutcome.err(f"Failed to clean Snap directories: {e}")
        return StepOutcome.ok()

    return Step("remove-snap-dirs", action, StepPolicy.WARN_AND_CONTINUE)


def autoremove_packages() -> Step:
    return command_step(
        "autoremove-packages",
        [["apt-get", "autoremove", "-y"]],
        "No packages to autoremove.",
        policy=StepPolicy.WARN_AND_CONTINUE,
        description="Cleaning up unnecessary files",
    )


# ----------------------------------------------------------------
# Services, Display Manager and Remote Desktop
# ----------------------------------------------------------------
def enable_service(service: str, name: Optional[str] = None) -> Step:
    return command_step(
        name or f"enable-{service}",
        [["systemctl", "enable", service], ["systemctl", "start", service]],
        f"Failed to enable and start {service}.",
        [service_active(service)],
        description=f"Enabling and starting {service}",
    )


def configure_lightdm(restart: bool = True) -> Step:
    """
    Select LightDM as the display manager. With restart=False the service is
    enabled and started instead of restarted.
    """
    if restart:
        activate: List[Command] = [["systemctl", "restart", "lightdm"]]
    else:
        activate = [["systemctl", "enable", "lightdm"], ["systemctl", "start", "lightdm"]]
    return command_step(
        "configure-lightdm",
        [
            (
                ["debconf-set-selections"],
                "lightdm shared/default-x-display-manager select lightdm\n",
            ),
            ["dpkg-reconfigure", "-f", "noninteractive", "lightdm"],
            *activate,
        ],
        "Failed to configure LightDM as default display manager.",
        [service_active("lightdm")],
        description="Setting LightDM as the default display manager",
    )


def set_startwm_exec(content: str, session_command: str) -> str:
    return re.sub(r"^exec .*$", f"exec {session_command}", content, flags=re.MULTILINE)


def configure_xrdp_session(
    session_command: str,
    xsession_files: Sequence[Path],
    startwm_path: Path,
    restart: bool = True,
) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        try:
            for path in xsession_files:
                ctx.host.write_text(path, f"{session_command}\n")
            startwm = ctx.host.read_text(startwm_path)
            if startwm is None:
                return StepOutcome.err(f"XRDP session script not found: {startwm_path}")
            ctx.host.write_text(startwm_path, set_startwm_exec(startwm, session_command))
        except OSError as e:
            return StepOutcome.err(f"Failed to configure XRDP to use {session_command}: {e}")
        ctx.log.checkpoint(f"XRDP configured to use {session_command}.")
        if not restart:
            return StepOutcome.ok()
        error = run_commands(
            ctx, [["systemctl", "restart", "xrdp"]], "Failed to restart XRDP."
        )
        if error is not None:
            return error
        return run_checks(ctx, [service_active("xrdp")])

    return Step("configure-xrdp-session", action, description="Configuring XRDP session")


def install_nomachine(url: str, deb_path: Path) -> Step:
    return command_step(
        "install-nomachine",
        [
            ["wget", url, "-O", str(deb_path)],
            ["dpkg", "-i", str(deb_path)],
            ["apt-get", "install", "-f", "-y"],
        ],
        "Failed to install NoMachine.",
        [command_present("nxserver")],
        description="Installing NoMachine",
    )


def restart_nomachine() -> Step:
    return command_step(
        "restart-nomachine",
        [["nxserver", "--restart"]],
        "Failed to restart NoMachine server.",
    )


def verify_package_installed(package: str) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        try:
            ctx.run(["dpkg", "-s", package])
        except CommandError:
            return StepOutcome.err(f"{package} installation failed or incomplete.")
        ctx.log.checkpoint(f"{package} installed successfully.")
        return StepOutcome.ok()

    return Step(f"verify-{package}", action)


def configure_gnome_keyring(keyring_file: Path) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        try:
            ctx.host.write_text(keyring_file, LOGIN_KEYRING)
        except OSError as e:
            return StepOutcome.err(f"Failed to write GNOME keyring: {e}")
        return StepOutcome.ok()

    return Step("configure-gnome-keyring", action, description="Configuring GNOME Keyring")


def grant_x_access(display: str) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        ctx.set_display(display)
        ctx.log.checkpoint(f"Using DISPLAY={display} for GUI operations.")
        error = run_commands(
            ctx,
            [["xhost", "+SI:localuser:root"]],
            f"Failed to configure X server permissions for DISPLAY={display}.",
        )
        return error or StepOutcome.ok()

    return Step("grant-x-access", action, description="Granting root access to the X server")


# ----------------------------------------------------------------
# Firefox
# ----------------------------------------------------------------
def add_mozilla_ppa(ppa: str, pin_file: Optional[Path] = None) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        error = run_commands(
            ctx, [["add-apt-repository", "-y", ppa]], "Failed to add Mozilla PPA."
        )
        if error is not None or pin_file is None:
            return error or StepOutcome.ok()
        try:
            ctx.host.write_text(pin_file, MOZILLA_PIN)
        except OSError as e:
            return StepOutcome.err(f"Failed to pin Mozilla PPA: {e}")
        return StepOutcome.ok()

    return Step("add-mozilla-ppa", action, description="Adding Mozilla PPA")


def create_firefox_profiles(
    variants: Sequence[ProfileVariant], profile_dir: Path
) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        return artifacts.create_firefox_profiles(ctx, variants, profile_dir)

    return Step(
        "create-firefox-profiles",
        action,
        description=f"Creating {len(variants)} Firefox profiles",
    )


def create_shared_dir(path: Path, mode: int = 0o777) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        try:
            ctx.host.make_dirs(path, mode=mode)
        except OSError as e:
            return StepOutcome.err(f"Failed to create shared directory {path}: {e}")
        ctx.log.checkpoint(f"Shared directory ready: {path}")
        return StepOutcome.ok()

    return Step("create-shared-dir", action, description=f"Creating {path}")


def create_profile_shortcuts(
    variants: Sequence[ProfileVariant], directory: Path
) -> Step:
    def action(ctx: RunContext) -> StepOutcome:
        return artifacts.create_profile_shortcuts(ctx, variants, directory)

    return Step(
        "create-profile-shortcuts",
        action,
        description=f"Creating Firefox shortcuts in {directory}",
    )


# ----------------------------------------------------------------
# Screen Locking and Blanking
# ----------------------------------------------------------------
def dconf_write(name: str, key: str, value: str, failure: str) -> Step:
    return command_step(
        name,
        [["dconf", "write", key, value]],
        failure,
        policy=StepPolicy.WARN_AND_CONTINUE,
    )


def disable_dpms() -> Step:
    return command_step(
        "disable-dpms",
        [["xset", "s", "off", "-dpms"]],
        "Failed to disable display power management.",
        policy=StepPolicy.WARN_AND_CONTINUE,
    )
