# ═══════════════════════════════════════════════════════════════
# HVRemote - Pytest Configuration
# Shared fixtures and configuration for tests
# ═══════════════════════════════════════════════════════════════

from typing import Callable, List, Optional, Sequence, Tuple, Union

import pytest
from pydantic import SecretStr

from hvremote.core.config import get_settings
from hvremote.remote import (
    BaseTransport,
    Dialect,
    LocalConfig,
    LocalTransport,
    SSHConfig,
    TransportType,
    WinRMConfig,
)
from hvremote.remote.transfer import Base64CommandUploadStrategy, UploadStrategy

# Configure pytest-asyncio
pytest_plugins = ['pytest_asyncio']


Outcome = Union[Tuple[int, str, str], Exception]


class FakeTransport(BaseTransport):
    """
    Transport that records commands and answers them from a responder.

    The responder gets the final command text and returns
    ``(exit_code, stdout, stderr)`` or an exception to raise.
    """

    transport_type = TransportType.LOCAL

    def __init__(
        self,
        config: Optional[LocalConfig] = None,
        responder: Optional[Callable[[str], Outcome]] = None,
        strategies: Optional[Sequence[UploadStrategy]] = None,
    ):
        self.commands: List[str] = []
        self.responder = responder or (lambda command: (0, "", ""))
        self._strategies = strategies
        super().__init__(config or LocalConfig(host="hv01", dialect=Dialect.WINDOWS))

    def _build_upload_strategies(self) -> List[UploadStrategy]:
        if self._strategies is not None:
            return list(self._strategies)
        return [Base64CommandUploadStrategy(chunk_size=4)]

    async def _execute(self, command: str) -> Tuple[int, str, str]:
        self.commands.append(command)
        outcome = self.responder(command)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; isolate env changes between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_transport_class():
    """The recording transport class."""
    return FakeTransport


@pytest.fixture
def local_transport(tmp_path):
    """Local transport rooted in a temporary working directory."""
    return LocalTransport(LocalConfig(working_directory=str(tmp_path), command_timeout=30))


@pytest.fixture
def ssh_config():
    """Create an SSHConfig for testing."""
    return SSHConfig(
        host="192.168.1.100",
        username="Administrator",
        password=SecretStr("testpass"),
        port=22,
        timeout=5,
        command_timeout=10,
    )


@pytest.fixture
def winrm_config():
    """Create a WinRMConfig for testing."""
    return WinRMConfig(
        host="192.168.1.100",
        username="Administrator",
        password=SecretStr("testpass"),
        port=5985,
        timeout=5,
        command_timeout=10,
    )
