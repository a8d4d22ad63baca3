"""Tests for keyword classification of coding requests."""

import pytest

from app.services.project_router import classify, forced_decision


@pytest.mark.parametrize("text", [
    "Make a discord bot that rolls dice",
    "add a slash command for /weather",
    "a discord.js music player",
    "welcome new members to my guild",
])
def test_discord_requests(text):
    decision = classify(text)
    assert decision.project_type == "discord_bot"
    assert decision.preview_allowed is False
    assert decision.requires_build is False
    assert decision.matched_keywords


@pytest.mark.parametrize("text", [
    "build me a portfolio website",
    "a landing page for my bakery",
    "simple HTML and CSS page",
    "React dashboard for sales",
    "my personal site with a blog",
])
def test_static_requests(text):
    decision = classify(text)
    assert decision.project_type == "static_html"
    assert decision.preview_allowed is True
    assert decision.requires_build is False


@pytest.mark.parametrize("text", [
    "build a REST API for todos",
    "a CLI that renames files",
    "write a guide parser",
])
def test_everything_else_is_node(text):
    decision = classify(text)
    assert decision.project_type == "node_project"
    assert decision.requires_build is True
    assert decision.matched_keywords == []


def test_discord_wins_over_web():
    decision = classify("a discord bot with a web dashboard")
    assert decision.project_type == "discord_bot"


def test_keywords_match_whole_words_only():
    """'build' must not trigger 'ui', 'guide' must not trigger 'guild'."""
    assert classify("build a quick tool").project_type == "node_project"
    assert "ui" not in classify("build a quick tool").matched_keywords


def test_plural_keyword_matches():
    assert classify("three websites for clients").project_type == "static_html"


def test_matching_is_case_insensitive():
    assert classify("A WEBSITE FOR MY BAND").project_type == "static_html"


def test_forced_decision():
    decision = forced_decision("static_html")
    assert decision.project_type == "static_html"
    assert decision.preview_allowed is True
    assert forced_decision("node_project").requires_build is True
    assert forced_decision("discord_bot").preview_allowed is False
