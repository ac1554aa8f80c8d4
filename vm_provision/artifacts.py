"""
Derived artifacts: one Firefox profile (with its prefs.js) and one desktop
launcher per profile variant.

Files are always overwritten, never appended to, so running a step twice
leaves the same set of files with the same content.
"""

import configparser
import logging
from pathlib import Path
from typing import Callable, List, Sequence, Set

from .config import ProfileVariant
from .context import RunContext
from .errors import ArtifactError, ProvisionError
from .runner import StepOutcome

logger = logging.getLogger("vm_provision.artifacts")

PREFS_TEMPLATE = """\
user_pref("browser.shell.checkDefaultBrowser", false);
user_pref("browser.startup.homepage", "about:blank");
user_pref("datareporting.healthreport.uploadEnabled", false);
user_pref("toolkit.telemetry.enabled", false);
user_pref("browser.newtabpage.activity-stream.feeds.telemetry", false);
user_pref("browser.ping-centre.telemetry", false);
user_pref("general.useragent.override", "{user_agent}");
user_pref("layout.css.devPixelsPerPx", "1.0");
"""

SHORTCUT_TEMPLATE = """\
[Desktop Entry]
Version=1.0
Name=Firefox - {name}
Comment=Launch Firefox with {name}
Exec=firefox --no-remote -P "{name}"
Icon=firefox
Terminal=false
Type=Application
Categories=Network;WebBrowser;
"""


def _js_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def render_prefs(variant: ProfileVariant) -> str:
    return PREFS_TEMPLATE.format(user_agent=_js_string(variant.user_agent))


def render_shortcut(variant: ProfileVariant) -> str:
    return SHORTCUT_TEMPLATE.format(name=variant.name)


def safe_name(variant: ProfileVariant) -> str:
    """
    The variant name, checked for use as a single path component and inside
    the quoted launcher and CreateProfile arguments.
    """
    name = variant.name
    if (
        not name
        or name in (".", "..")
        or any(c in name for c in '/"\0')
        or any(c.isspace() for c in name)
    ):
        raise ArtifactError(f"Invalid profile name: {name!r}")
    return name


def registered_profiles(ctx: RunContext, profile_dir: Path) -> Set[str]:
    """Profile names already listed in profiles.ini."""
    content = ctx.host.read_text(Path(profile_dir) / "profiles.ini")
    if not content:
        return set()
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(content)
    except configparser.Error as e:
        logger.warning(f"Could not parse profiles.ini: {e}")
        return set()
    return {
        parser[section]["Name"]
        for section in parser.sections()
        if section.startswith("Profile") and "Name" in parser[section]
    }


def write_each(
    ctx: RunContext,
    variants: Sequence[ProfileVariant],
    noun: str,
    write_one: Callable[[RunContext, ProfileVariant], None],
) -> StepOutcome:
    """
    Write one artifact per variant in order, stopping at the first failure.
    Artifacts already written are left in place and reported.
    """
    written: List[str] = []
    for variant in variants:
        try:
            write_one(ctx, variant)
        except (OSError, ProvisionError) as e:
            return StepOutcome.err(
                f"{len(written)} of {len(variants)} {noun} written; "
                f"failed on {variant.name}: {e}"
            )
        written.append(variant.name)
    return StepOutcome.ok(f"{len(written)} {noun} written")


# ----------------------------------------------------------------
# Firefox Profiles
# ----------------------------------------------------------------
def create_firefox_profiles(
    ctx: RunContext, variants: Sequence[ProfileVariant], profile_dir: Path
) -> StepOutcome:
    profile_dir = Path(profile_dir)
    existing = registered_profiles(ctx, profile_dir)

    def write_profile(ctx: RunContext, variant: ProfileVariant) -> None:
        path = profile_dir / safe_name(variant)
        ctx.log.checkpoint(
            f"Creating Firefox profile: {variant.name} with resolution "
            f"{variant.resolution} and user agent {variant.user_agent}..."
        )
        if variant.name not in existing:
            ctx.run(["firefox", "-CreateProfile", f"{variant.name} {path}"])
        ctx.host.make_dirs(path)
        ctx.host.write_text(path / "prefs.js", render_prefs(variant))
        ctx.log.checkpoint(f"Configured preferences for {variant.name}.")

    return write_each(ctx, variants, "profiles", write_profile)


# ----------------------------------------------------------------
# Desktop Shortcuts
# ----------------------------------------------------------------
def shortcut_path(directory: Path, variant: ProfileVariant) -> Path:
    return Path(directory) / f"firefox-{safe_name(variant)}.desktop"


def create_profile_shortcuts(
    ctx: RunContext, variants: Sequence[ProfileVariant], directory: Path
) -> StepOutcome:
    try:
        ctx.host.make_dirs(directory, mode=0o755)
    except OSError as e:
        return StepOutcome.err(f"Cannot create shortcut directory {directory}: {e}")

    def write_shortcut(ctx: RunContext, variant: ProfileVariant) -> None:
        path = shortcut_path(directory, variant)
        ctx.host.write_text(path, render_shortcut(variant), mode=0o755)
        ctx.log.checkpoint(f"Desktop shortcut created: {path}")

    return write_each(ctx, variants, "shortcuts", write_shortcut)
