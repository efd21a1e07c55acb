"""Shared fixtures for the spotcache tests."""

from __future__ import annotations

import socket

import httpx
import pytest


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def upstream_requests() -> list[httpx.Request]:
    return []
