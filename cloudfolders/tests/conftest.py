"""
Test configuration.

Pytest fixtures shared by the cloud folder tests. Nothing here talks to a
real backend: adapters either use AsyncMock hooks or an httpx MockTransport.
"""

from datetime import timedelta

import pytest

from cloudfolders.core.config import CloudStorageSettings
from cloudfolders.providers.base import TokenInfo, utcnow
from cloudfolders.tests.fakes import FakeClock, FakeProvider, make_config


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_provider(clock):
    """Factory for FakeProvider instances on the fake clock."""
    def _make(
        token: str = "token-1",
        requests_per_minute=None,
        refresh_tokens: bool = True,
        token_info=None,
        capabilities=None,
    ) -> FakeProvider:
        return FakeProvider(
            token,
            make_config(requests_per_minute=requests_per_minute, refresh_tokens=refresh_tokens),
            token_info=token_info,
            capabilities=capabilities,
            clock=clock,
        )
    return _make


@pytest.fixture
def expiring_token_info():
    """Token that expires inside the refresh buffer and can be renewed."""
    return TokenInfo(
        access_token="token-1",
        refresh_token="refresh-1",
        expires_at=utcnow() + timedelta(minutes=2),
    )


@pytest.fixture
def test_settings():
    return CloudStorageSettings(
        dropbox_client_id="dbx-id",
        dropbox_client_secret="dbx-secret",
        google_drive_client_id="g-id",
        google_drive_client_secret="g-secret",
        box_client_id="box-id",
        box_client_secret="box-secret",
        onedrive_client_id="ms-id",
        onedrive_client_secret="ms-secret",
    )
