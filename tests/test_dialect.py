# ═══════════════════════════════════════════════════════════════
# HVRemote - Command Dialect Tests
# ═══════════════════════════════════════════════════════════════

import pytest

from hvremote.remote import Dialect, PosixDialect, WindowsDialect, get_dialect
from hvremote.remote.transfer import resolve_remote_file_path


@pytest.fixture
def windows():
    return get_dialect(Dialect.WINDOWS)


@pytest.fixture
def posix():
    return get_dialect(Dialect.POSIX)


class TestPaths:

    def test_get_dialect(self, windows, posix):
        assert isinstance(windows, WindowsDialect)
        assert isinstance(posix, PosixDialect)
        assert get_dialect("posix") is posix

    def test_windows_join_and_parent(self, windows):
        assert windows.join("C:\\Temp", "a", "b.txt") == "C:\\Temp\\a\\b.txt"
        assert windows.parent("C:\\Temp\\a\\b.txt") == "C:\\Temp\\a"
        assert windows.from_relative("C:\\Temp\\up", "sub/dir/f.txt") == "C:\\Temp\\up\\sub\\dir\\f.txt"

    def test_posix_join_and_parent(self, posix):
        assert posix.join("/tmp", "a", "b.txt") == "/tmp/a/b.txt"
        assert posix.parent("/tmp/a/b.txt") == "/tmp/a"
        assert posix.from_relative("/tmp/up", "sub/f.txt") == "/tmp/up/sub/f.txt"

    def test_upload_roots(self, windows, posix):
        assert windows.upload_root(1700000000) == "C:\\Temp\\hyperv-upload-1700000000"
        assert posix.upload_root(1700000000) == "/tmp/hyperv-upload-1700000000"

    def test_sftp_path(self, windows, posix):
        assert windows.to_sftp_path("C:\\Images\\a.iso") == "C:/Images/a.iso"
        assert posix.to_sftp_path("/srv/a.iso") == "/srv/a.iso"


class TestResolveRemoteFilePath:
    """Directory-form remote paths keep the local base name."""

    def test_empty_remote_path(self, windows):
        assert resolve_remote_file_path("/home/me/iso.zip", "", windows) == "iso.zip"

    def test_windows_directory_forms(self, windows):
        assert resolve_remote_file_path("./iso.zip", "C:\\Images\\", windows) == "C:\\Images\\iso.zip"
        assert resolve_remote_file_path("./iso.zip", "C:/Images/", windows) == "C:/Images/iso.zip"

    def test_posix_directory_form(self, posix):
        assert resolve_remote_file_path("./iso.zip", "/srv/images/", posix) == "/srv/images/iso.zip"

    def test_explicit_file_name(self, windows):
        assert resolve_remote_file_path("./iso.zip", "C:\\Images\\other.zip", windows) == "C:\\Images\\other.zip"


class TestHelperCommands:

    def test_windows_quoting(self, windows):
        assert windows.quote("C:\\O'Brien") == "'C:\\O''Brien'"
        assert windows.mkdir("C:\\x") == "New-Item -ItemType Directory -Force -Path 'C:\\x' | Out-Null"
        assert windows.file_exists("C:\\x") == "Test-Path -Path 'C:\\x' -PathType Leaf"
        assert windows.directory_exists("C:\\x") == "Test-Path -Path 'C:\\x' -PathType Container"

    def test_windows_delete_ignores_missing(self, windows):
        assert windows.delete("C:\\x") == (
            "if (Test-Path -Path 'C:\\x') { Remove-Item -Path 'C:\\x' -Recurse -Force }"
        )

    def test_windows_base64_write(self, windows):
        create = windows.write_base64("QUJD", "C:\\f.bin")
        append = windows.write_base64("QUJD", "C:\\f.bin", append=True)
        assert "WriteAllBytes('C:\\f.bin', $bytes)" in create
        assert "'Append'" in append
        assert "FromBase64String('QUJD')" in append

    def test_windows_wrap_command(self, windows):
        wrapped = windows.wrap_command('Write-Output "hi"')
        assert wrapped == 'powershell -NoProfile -NonInteractive -Command "Write-Output \\"hi\\""'

    def test_posix_commands(self, posix):
        assert posix.mkdir("/tmp/a b") == "mkdir -p '/tmp/a b'"
        assert posix.file_exists("/tmp/f") == "test -f /tmp/f && echo 'true' || echo 'false'"
        assert posix.delete("/tmp/f") == "rm -rf /tmp/f"
        assert posix.write_base64("QUJD", "/tmp/f") == "printf '%s' 'QUJD' | base64 -d > /tmp/f"
        assert posix.write_base64("QUJD", "/tmp/f", append=True).endswith(">> /tmp/f")
        assert posix.wrap_command("ls") == "ls"


class TestParseBool:

    @pytest.mark.parametrize("output,expected", [
        ("True\r\n", True),
        ("true", True),
        ("False", False),
        (" false \n", False),
        ("", None),
        ("Access denied", None),
    ])
    def test_parse_bool(self, output, expected):
        assert WindowsDialect.parse_bool(output) is expected
