"""
Named provisioning plans. One plan is chosen at startup; each is just an
ordered list of steps assembled from the builders in ``steps``.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from . import steps
from .config import AppConfig
from .errors import ConfigError
from .runner import Step

PlanBuilder = Callable[[AppConfig], List[Step]]


def base_system(config: AppConfig) -> List[Step]:
    return [
        steps.check_os_version(config.os_version),
        steps.configure_pending_packages(),
        steps.update_package_lists(),
        steps.install_packages(
            "install-essentials",
            ["wget", "curl", "sudo"],
            verify_commands=["wget", "curl", "sudo"],
            failure="Failed to install essential utilities.",
        ),
    ]


def remove_snap(config: AppConfig) -> List[Step]:
    return [steps.purge_snap(), steps.remove_snap_dirs(config.snap_dirs)]


def xfce_desktop(config: AppConfig, with_xrdp: bool = False) -> List[Step]:
    packages = ["xfce4", "xfce4-goodies", "lightdm", "dbus-x11"]
    if with_xrdp:
        packages.append("xrdp")
    return [
        steps.install_packages(
            "install-xfce",
            packages,
            failure="Failed to install XFCE or its dependencies.",
        ),
        steps.configure_lightdm(restart=not with_xrdp),
    ]


def xrdp(config: AppConfig) -> List[Step]:
    return [
        steps.install_packages(
            "install-xrdp", ["xrdp", "xorgxrdp"], failure="Failed to install XRDP."
        ),
        steps.enable_service("xrdp"),
        steps.configure_xrdp_session(
            config.session_command, config.xsession_files, config.startwm_path
        ),
        steps.enable_service("dbus"),
    ]


def firefox(config: AppConfig, pin: bool = True) -> List[Step]:
    return [
        steps.install_packages(
            "install-software-properties",
            ["software-properties-common"],
            failure="Failed to install software-properties-common.",
        ),
        steps.add_mozilla_ppa(
            config.mozilla_ppa, config.firefox_pin_file if pin else None
        ),
        steps.update_package_lists("update-after-mozilla-ppa"),
        steps.install_packages(
            "install-firefox",
            ["firefox"],
            verify_commands=["firefox"],
            failure="Failed to install Firefox via APT.",
        ),
    ]


def firefox_profiles(
    config: AppConfig, shortcut_dir: Optional[Path] = None
) -> List[Step]:
    variants = config.effective_variants()
    return [
        steps.create_firefox_profiles(variants, config.profile_dir),
        steps.create_profile_shortcuts(variants, shortcut_dir or config.shortcut_dir),
    ]


def screen_lock_and_cleanup(config: AppConfig) -> List[Step]:
    return [
        steps.install_packages(
            "install-dconf", ["dconf-cli"], failure="Failed to install dconf-cli."
        ),
        steps.dconf_write(
            "disable-screen-lock",
            "/org/gnome/desktop/screensaver/lock-enabled",
            "false",
            "Failed to disable screen locking.",
        ),
        steps.dconf_write(
            "disable-idle-delay",
            "/org/gnome/desktop/session/idle-delay",
            "0",
            "Failed to disable idle delay.",
        ),
        steps.disable_dpms(),
        steps.autoremove_packages(),
    ]


# ----------------------------------------------------------------
# Plans
# ----------------------------------------------------------------
def xfce_xrdp_plan(config: AppConfig) -> List[Step]:
    """XFCE with LightDM, XRDP, Firefox from the Mozilla PPA and profiles."""
    return (
        base_system(config)
        + remove_snap(config)
        + [
            steps.install_packages(
                "install-pip",
                ["python3-pip"],
                verify_commands=["pip3"],
                failure="Failed to install python3-pip.",
            )
        ]
        + xfce_desktop(config)
        + xrdp(config)
        + firefox(config)
        + firefox_profiles(config)
        + screen_lock_and_cleanup(config)
    )


def xfce_xrdp_shared_plan(config: AppConfig) -> List[Step]:
    """
    XRDP installed alongside XFCE, root granted access to the GUI display,
    and profile shortcuts written to a shared directory.
    """
    create_profiles, create_shortcuts = firefox_profiles(
        config, shortcut_dir=config.shared_shortcut_dir
    )
    return (
        base_system(config)
        + xfce_desktop(config, with_xrdp=True)
        + [
            steps.enable_service("xrdp"),
            steps.configure_xrdp_session(
                config.session_command,
                config.xsession_files,
                config.startwm_path,
                restart=False,
            ),
        ]
        + firefox(config, pin=False)
        + [steps.grant_x_access(config.gui_display)]
        + [
            create_profiles,
            steps.create_shared_dir(config.shared_profiles_dir),
            create_shortcuts,
        ]
        + screen_lock_and_cleanup(config)
    )


def xfce_nomachine_plan(config: AppConfig) -> List[Step]:
    """XFCE with NoMachine for remote access instead of XRDP."""
    return (
        base_system(config)
        + remove_snap(config)
        + xfce_desktop(config)
        + [
            steps.install_nomachine(config.nomachine_url, config.nomachine_deb),
            steps.restart_nomachine(),
        ]
        + firefox(config)
        + firefox_profiles(config)
        + screen_lock_and_cleanup(config)
    )


def ubuntu_desktop_plan(config: AppConfig) -> List[Step]:
    """The full ubuntu-desktop environment with GNOME Keyring and XRDP."""
    return (
        base_system(config)
        + remove_snap(config)
        + [
            steps.install_packages(
                "install-ubuntu-desktop",
                ["ubuntu-desktop"],
                failure="Failed to install Ubuntu Desktop.",
            ),
            steps.verify_package_installed("ubuntu-desktop"),
            steps.install_packages(
                "install-gnome-keyring",
                ["libpam-gnome-keyring"],
                failure="Failed to install libpam-gnome-keyring.",
            ),
            steps.configure_gnome_keyring(config.keyring_file),
            steps.install_packages(
                "install-xrdp", ["xrdp", "xorgxrdp"], failure="Failed to install XRDP."
            ),
            steps.enable_service("xrdp"),
        ]
        + firefox(config)
        + firefox_profiles(config)
        + screen_lock_and_cleanup(config)
    )


PLANS: Dict[str, PlanBuilder] = {
    "xfce-xrdp": xfce_xrdp_plan,
    "xfce-xrdp-shared": xfce_xrdp_shared_plan,
    "xfce-nomachine": xfce_nomachine_plan,
    "ubuntu-desktop": ubuntu_desktop_plan,
}


def build_plan(config: AppConfig) -> List[Step]:
    try:
        builder = PLANS[config.plan]
    except KeyError:
        raise ConfigError(
            f"Unknown plan '{config.plan}'. Available: {', '.join(sorted(PLANS))}"
        ) from None
    return builder(config)
