"""
Tests for Firefox profile and desktop shortcut generation.
"""

import os

import pytest

from conftest import FakeHost

from vm_provision import artifacts
from vm_provision.config import ProfileVariant
from vm_provision.context import RunContext


def snapshot(directory):
    return {
        p.relative_to(directory).as_posix(): p.read_text()
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    }


def test_each_profile_gets_its_own_user_agent(ctx, variants):
    outcome = artifacts.create_firefox_profiles(ctx, variants, ctx.config.profile_dir)

    assert outcome
    prefs1 = (ctx.config.profile_dir / "profile1" / "prefs.js").read_text()
    prefs2 = (ctx.config.profile_dir / "profile2" / "prefs.js").read_text()
    assert 'user_pref("general.useragent.override", "UA-one/1.0");' in prefs1
    assert "UA-two/2.0" not in prefs1
    assert 'user_pref("general.useragent.override", "UA-two/2.0");' in prefs2
    assert "UA-one/1.0" not in prefs2
    assert 'user_pref("toolkit.telemetry.enabled", false);' in prefs1


def test_profiles_are_registered_with_firefox(ctx, host, variants):
    artifacts.create_firefox_profiles(ctx, variants, ctx.config.profile_dir)

    profile1 = ctx.config.profile_dir / "profile1"
    assert ["firefox", "-CreateProfile", f"profile1 {profile1}"] in host.commands
    assert len([c for c in host.commands if c[:2] == ["firefox", "-CreateProfile"]]) == 2


def test_profile_generation_is_idempotent(ctx, variants):
    profile_dir = ctx.config.profile_dir

    artifacts.create_firefox_profiles(ctx, variants, profile_dir)
    first = snapshot(profile_dir)
    artifacts.create_firefox_profiles(ctx, variants, profile_dir)

    assert snapshot(profile_dir) == first
    prefs = (profile_dir / "profile1" / "prefs.js").read_text()
    assert prefs.count("general.useragent.override") == 1


def test_registered_profiles_are_not_created_again(ctx, host, variants):
    profile_dir = ctx.config.profile_dir
    profile_dir.mkdir(parents=True)
    (profile_dir / "profiles.ini").write_text(
        "[General]\nStartWithLastProfile=1\n\n"
        "[Profile0]\nName=profile1\nIsRelative=0\nPath=/root/.mozilla/firefox/profile1\n"
    )

    artifacts.create_firefox_profiles(ctx, variants, profile_dir)

    created = [c[2] for c in host.commands if c[:2] == ["firefox", "-CreateProfile"]]
    assert created == [f"profile2 {profile_dir / 'profile2'}"]
    assert (profile_dir / "profile1" / "prefs.js").is_file()


def test_partial_write_failure_is_reported(config, run_log, variants):
    host = FakeHost(fail_writes=["firefox-broken.desktop"])
    ctx = RunContext(config=config, log=run_log, host=host)
    failing = [
        variants[0],
        ProfileVariant("broken", "UA-broken"),
        variants[1],
    ]

    outcome = artifacts.create_profile_shortcuts(ctx, failing, config.shortcut_dir)

    assert not outcome
    assert outcome.message.startswith("1 of 3 shortcuts written; failed on broken:")
    assert (config.shortcut_dir / "firefox-profile1.desktop").is_file()
    assert not (config.shortcut_dir / "firefox-profile2.desktop").exists()


def test_create_profile_failure_stops_iteration(config, run_log, variants):
    host = FakeHost(failing={"firefox": 1})
    ctx = RunContext(config=config, log=run_log, host=host)

    outcome = artifacts.create_firefox_profiles(ctx, variants, config.profile_dir)

    assert not outcome
    assert outcome.message.startswith("0 of 2 profiles written; failed on profile1:")
    assert len(host.commands) == 1


def test_shortcuts_content_and_mode(ctx, variants):
    directory = ctx.config.shortcut_dir

    outcome = artifacts.create_profile_shortcuts(ctx, variants, directory)

    assert outcome.message == "2 shortcuts written"
    path = directory / "firefox-profile2.desktop"
    content = path.read_text()
    assert content.startswith("[Desktop Entry]\n")
    assert "Name=Firefox - profile2\n" in content
    assert 'Exec=firefox --no-remote -P "profile2"\n' in content
    assert os.access(path, os.X_OK)


def test_shortcuts_overwrite_existing(ctx, variants):
    directory = ctx.config.shortcut_dir
    directory.mkdir(parents=True)
    stale = directory / "firefox-profile1.desktop"
    stale.write_text("garbage\n")

    artifacts.create_profile_shortcuts(ctx, variants, directory)
    artifacts.create_profile_shortcuts(ctx, variants, directory)

    assert stale.read_text() == artifacts.render_shortcut(variants[0])


def test_user_agent_is_escaped_for_prefs():
    prefs = artifacts.render_prefs(ProfileVariant("p", 'Agent "quoted"'))
    assert 'user_pref("general.useragent.override", "Agent \\"quoted\\"");' in prefs


def test_variant_name_must_be_a_file_name(ctx, variants):
    bad = [variants[0], ProfileVariant("../etc", "UA-bad")]

    outcome = artifacts.create_profile_shortcuts(ctx, bad, ctx.config.shortcut_dir)

    assert outcome.message.startswith("1 of 2 shortcuts written; failed on ../etc:")
    assert sorted(p.name for p in ctx.config.shortcut_dir.iterdir()) == [
        "firefox-profile1.desktop"
    ]


@pytest.mark.parametrize("name", ['say "hi"', "two words", "tab\there", ".."])
def test_names_unsafe_for_launchers_are_rejected(ctx, host, name):
    outcome = artifacts.create_firefox_profiles(
        ctx, [ProfileVariant(name, "UA")], ctx.config.profile_dir
    )

    assert outcome.message.startswith(f"0 of 1 profiles written; failed on {name}:")
    assert "Invalid profile name" in outcome.message
    assert host.commands == []
