"""Tests for the relevance filter."""

import pytest

from botforge.sync.relevance import DEFAULT_RELEVANCE_MARKERS, RelevanceFilter


@pytest.mark.parametrize(
    "paths",
    [
        {"bot.js"},
        {"src/bot.js"},
        {"discord-bot/index.js"},
        {"packages/discord-bot/commands/ping.js"},
        {"README.md", "src/bot.js"},
    ],
)
def test_default_markers_match_bot_code(paths):
    assert RelevanceFilter().is_relevant(paths)


@pytest.mark.parametrize("paths", [set(), {"README.md"}, {"docs/setup.md", ".github/workflows/ci.yml"}])
def test_default_markers_ignore_other_paths(paths):
    assert not RelevanceFilter().is_relevant(paths)


def test_default_marker_set():
    assert DEFAULT_RELEVANCE_MARKERS == frozenset({"bot.js", "discord-bot"})


def test_custom_markers_replace_defaults():
    relevance = RelevanceFilter(["index.ts"])
    assert relevance.is_relevant({"src/index.ts"})
    assert not relevance.is_relevant({"src/bot.js"})


def test_adding_markers_only_widens():
    base = RelevanceFilter()
    wider = base.with_markers("commands")
    paths = [{"src/bot.js"}, {"commands/ping.js"}, {"README.md"}]

    for changed in paths:
        if base.is_relevant(changed):
            assert wider.is_relevant(changed)
    assert wider.is_relevant({"commands/ping.js"})


def test_blank_markers_are_ignored():
    relevance = RelevanceFilter(["", "  ", "bot.js"])
    assert relevance.markers == frozenset({"bot.js"})
    assert not relevance.is_relevant({"README.md"})


def test_marker_inside_a_segment_matches():
    relevance = RelevanceFilter(["bot.js"])
    assert relevance.matches("bot.js")
    assert relevance.matches("src/mybot.js")
    assert not relevance.matches("src/bot.ts")
