"""Shared fixtures and Hypothesis profiles for the GRC test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from hypothesis import Verbosity, settings

from grc.core.db import open_db

settings.register_profile("default", max_examples=100, deadline=None, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=500, deadline=None, verbosity=Verbosity.quiet)
settings.register_profile("debug", max_examples=10, deadline=None, verbosity=Verbosity.verbose)
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture()
def conn(tmp_path: Path):
    """Yield a fresh database connection in a temporary directory."""
    c = open_db(tmp_path / "test.db")
    yield c
    c.close()
