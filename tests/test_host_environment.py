"""Tests for host readings and actor resolution."""

import sys
from types import SimpleNamespace

import psutil
import pytest

from perfwatch.core.security import actor_from_authorization
from perfwatch.services.host_environment import HostEnvironment, read_peak_memory_bytes

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="getrusage is POSIX only")


@posix_only
def test_peak_memory_is_never_below_current_rss():
    current = psutil.Process().memory_info().rss

    assert read_peak_memory_bytes() >= current


@posix_only
def test_peak_memory_reports_high_water_mark(monkeypatch):
    import resource

    monkeypatch.setattr(resource, "getrusage", lambda who: SimpleNamespace(ru_maxrss=2048))
    expected = 2048 if sys.platform == "darwin" else 2048 * 1024

    assert read_peak_memory_bytes() == expected


def test_host_memory_reader_is_injectable():
    assert HostEnvironment(memory_reader=lambda: 123).peak_memory_bytes() == 123


def test_actor_from_host_token_keeps_role_order(make_token):
    token = make_token(user_id=9, roles=["Editor", "author", "editor"])

    actor = actor_from_authorization(f"Bearer {token}")

    assert actor.user_id == 9
    assert actor.roles == ("editor", "author")


def test_expired_or_garbled_token_is_anonymous(make_token):
    expired = make_token(user_id=9, roles=["administrator"], expires_minutes=-1)

    assert not actor_from_authorization(f"Bearer {expired}").is_authenticated
    assert not actor_from_authorization("Bearer not-a-jwt").is_authenticated
    assert not actor_from_authorization("Basic abc").is_authenticated
