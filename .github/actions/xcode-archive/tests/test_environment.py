"""Tests for environment helpers."""

from __future__ import annotations

import os

import pytest
from plumbum import local

from xcode_archive.commands import RunResult, run_cmd
from xcode_archive.environment import (
    normalize_input_env,
    temp_dir,
    unset_ruby_env,
)


def test_normalize_input_env_rewrites_dashed_keys(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Dashed input names become underscore names."""
    monkeypatch.setenv("INPUT_OUTPUT-DIR", "build")
    monkeypatch.setenv("INPUT_OUTPUT_DIR", "")
    monkeypatch.delenv("INPUT_OUTPUT_DIR")

    normalize_input_env()

    assert os.environ["INPUT_OUTPUT_DIR"] == "build"
    assert "INPUT_OUTPUT-DIR" not in os.environ


def test_normalize_input_env_keeps_existing_underscore_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Underscore keys win and the dashed duplicate is dropped."""
    monkeypatch.setenv("INPUT_ARTIFACT-NAME", "Dashed")
    monkeypatch.setenv("INPUT_ARTIFACT_NAME", "Underscore")

    normalize_input_env()

    assert os.environ["INPUT_ARTIFACT_NAME"] == "Underscore"
    assert "INPUT_ARTIFACT-NAME" not in os.environ


def test_temp_dir_creates_unique_directories() -> None:
    """Each call yields a new empty directory."""
    first = temp_dir("export")
    second = temp_dir("export")
    try:
        assert first != second
        assert first.is_dir()
        assert first.name.startswith("export-")
    finally:
        first.rmdir()
        second.rmdir()


def test_unset_ruby_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Bundler variables are removed before exporting."""
    monkeypatch.setenv("GEM_HOME", "/gems")
    monkeypatch.setenv("BUNDLE_GEMFILE", "/src/Gemfile")

    assert unset_ruby_env() == ["GEM_HOME", "BUNDLE_GEMFILE"]
    assert "GEM_HOME" not in os.environ
    assert unset_ruby_env() == []


def test_unset_ruby_env_hides_variables_from_child_processes(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Variables inherited at start-up no longer reach spawned commands."""
    monkeypatch.setenv("GEM_HOME", "/gems")
    monkeypatch.setitem(local.env, "GEM_HOME", "/gems")

    assert unset_ruby_env() == ["GEM_HOME"]

    script = 'printf "%s" "${GEM_HOME-unset}"'
    result = run_cmd(local["sh"]["-c", script], method="run")
    assert isinstance(result, RunResult)
    assert result.stdout == "unset"
    assert "GEM_HOME" not in local.env
