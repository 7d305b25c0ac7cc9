"""Tests for input validation utilities."""

from pathlib import Path

import pytest

from fetchbay.core.validation import (
    DEFAULT_SIZE_FALLBACK,
    ExtensionPolicy,
    OriginGuard,
    PathTraversalError,
    RejectionCode,
    filename_from_url,
    guard_path,
    is_internal_host,
    origin_guard,
    parse_ipv4_literal,
    parse_size,
    sanitize_filename,
)


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    def test_traversal_sequence_removed(self):
        """Test that ../ sequences leave no dot pair and no separator."""
        result = sanitize_filename("../../etc/passwd")

        assert ".." not in result
        assert "/" not in result
        assert "\\" not in result
        assert result == "etcpasswd"

    def test_backslashes_removed(self):
        """Test that Windows separators are removed."""
        assert sanitize_filename("..\\..\\boot.ini") == "boot.ini"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("my file (1).txt", "my_file__1_.txt"),
            ("résumé.pdf", "r_sum_.pdf"),
            ("report-2024_final.tar.gz", "report-2024_final.tar.gz"),
            ("a;b|c.zip", "a_b_c.zip"),
        ],
    )
    def test_unsafe_characters_replaced(self, raw: str, expected: str):
        """Test that characters outside [A-Za-z0-9._-] become underscores."""
        assert sanitize_filename(raw) == expected

    def test_truncated_to_255_characters(self):
        """Test that long names are truncated."""
        assert len(sanitize_filename("a" * 400 + ".txt")) == 255

    def test_may_return_empty(self):
        """Test that a name made only of traversal and separators sanitizes to empty."""
        assert sanitize_filename("../..//") == ""


class TestGuardPath:
    """Tests for guard_path."""

    def test_plain_filename_accepted(self, tmp_path: Path):
        """Test that a plain filename resolves inside the folder."""
        result = guard_path(tmp_path, "file.txt")

        assert result == (tmp_path / "file.txt").resolve()

    def test_parent_reference_rejected(self, tmp_path: Path):
        """Test that a raw traversal is rejected."""
        with pytest.raises(PathTraversalError, match="Path traversal detected"):
            guard_path(tmp_path / "inner", "../escape.txt")

    def test_folder_itself_rejected(self, tmp_path: Path):
        """Test that a name resolving to the folder itself is rejected."""
        with pytest.raises(PathTraversalError):
            guard_path(tmp_path, ".")

    def test_absolute_filename_rejected(self, tmp_path: Path):
        """Test that an absolute filename outside the folder is rejected."""
        with pytest.raises(PathTraversalError):
            guard_path(tmp_path, "/etc/passwd")

    def test_symlink_escape_rejected(self, tmp_path: Path):
        """Test that a symlink inside the folder pointing outside is rejected."""
        outside = tmp_path / "outside"
        outside.mkdir()
        folder = tmp_path / "folder"
        folder.mkdir()
        (folder / "link").symlink_to(outside)

        with pytest.raises(PathTraversalError):
            guard_path(folder, "link")

    def test_sibling_prefix_folder_rejected(self, tmp_path: Path):
        """Test that /data/files-evil is not treated as inside /data/files."""
        folder = tmp_path / "files"
        folder.mkdir()

        with pytest.raises(PathTraversalError):
            guard_path(folder, "../files-evil/x.txt")


class TestOriginGuard:
    """Tests for OriginGuard."""

    @pytest.fixture
    def guard(self) -> OriginGuard:
        """Create an origin guard instance."""
        return OriginGuard()

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/x",
            "http://example.com/file.zip",
            "https://8.8.8.8/x",
            "https://172.32.0.1/x",
        ],
    )
    def test_public_urls_accepted(self, guard: OriginGuard, url: str):
        """Test that public http(s) URLs pass."""
        result = guard.check(url)

        assert result.is_valid is True
        assert result.sanitized_value == url

    @pytest.mark.parametrize(
        "url",
        [
            "http://192.168.1.1/x",
            "http://127.0.0.1/x",
            "http://10.0.0.5/x",
            "http://172.16.0.1/x",
            "http://172.31.255.255/x",
            "http://169.254.169.254/latest/meta-data",
            "http://localhost:8080/x",
        ],
    )
    def test_internal_hosts_rejected(self, guard: OriginGuard, url: str):
        """Test that localhost and private IPv4 literals are rejected."""
        result = guard.check(url)

        assert result.is_valid is False
        assert result.error_code == RejectionCode.DISALLOWED_ORIGIN
        assert result.error_message == "Internal/private IP addresses are not allowed"

    @pytest.mark.parametrize(
        "url",
        [
            "ftp://host/x",
            "gopher://host/x",
            "file:///etc/passwd",
            "mailto:a@b.example",
            "ftp:foo",
        ],
    )
    def test_other_schemes_rejected(self, guard: OriginGuard, url: str):
        """Test that non-http(s) schemes are disallowed even without a host."""
        result = guard.check(url)

        assert result.is_valid is False
        assert result.error_code == RejectionCode.DISALLOWED_SCHEME
        assert result.error_message == "Only HTTP and HTTPS protocols are allowed"

    @pytest.mark.parametrize(
        "url",
        [
            "http://2130706433/a.txt",
            "http://127.1/a.txt",
            "http://0x7f.0.0.1/a.txt",
            "http://0177.0.0.1/a.txt",
            "http://10.1/a.txt",
            "http://0xc0a80001/a.txt",
            "http://127.0.0.1./a.txt",
        ],
    )
    def test_shorthand_ipv4_literals_rejected(self, guard: OriginGuard, url: str):
        """Test that shorthand IPv4 forms of internal addresses are rejected."""
        result = guard.check(url)

        assert result.is_valid is False
        assert result.error_code == RejectionCode.DISALLOWED_ORIGIN

    def test_ftp_is_disallowed_scheme(self, guard: OriginGuard):
        """Test the exact code for an ftp URL."""
        result = guard.check("ftp://example.com/f.zip")

        assert result.error_code == RejectionCode.DISALLOWED_SCHEME
        assert result.error_message == "Only HTTP and HTTPS protocols are allowed"

    @pytest.mark.parametrize("url", ["not a url", "example.com/file", "", "http://"])
    def test_malformed_urls_rejected(self, guard: OriginGuard, url: str):
        """Test that unparsable URLs are rejected as invalid format."""
        result = guard.check(url)

        assert result.is_valid is False
        assert result.error_code == RejectionCode.INVALID_URL_FORMAT

    def test_dns_names_not_resolved(self, guard: OriginGuard):
        """Test that only literals are inspected; names pass through."""
        assert guard.is_allowed("http://internal.example.corp/x") is True

    def test_module_singleton(self):
        """Test the convenience singleton."""
        assert origin_guard.is_allowed("https://example.com/x")


class TestIsInternalHost:
    """Tests for is_internal_host."""

    @pytest.mark.parametrize(
        "host,expected",
        [
            ("localhost", True),
            ("127.0.0.53", True),
            ("10.1.2.3", True),
            ("172.15.0.1", False),
            ("172.16.0.1", True),
            ("192.168.0.1", True),
            ("192.169.0.1", False),
            ("169.254.1.1", True),
            ("example.com", False),
            ("::1", False),
            ("2130706433", True),
            ("127.1", True),
            ("0x7f.1", True),
            ("0300.0250.1.1", True),
            ("8.8.8.8", False),
            ("134744072", False),
            ("1.2.3.4.5", False),
            ("256.1.1.1", False),
            ("09.0.0.1", False),
        ],
    )
    def test_classification(self, host: str, expected: bool):
        """Test IPv4 literal classification."""
        assert is_internal_host(host) is expected


class TestParseIpv4Literal:
    """Tests for parse_ipv4_literal."""

    @pytest.mark.parametrize(
        "host,expected",
        [
            ("127.0.0.1", "127.0.0.1"),
            ("127.1", "127.0.0.1"),
            ("10.1", "10.0.0.1"),
            ("172.16.1", "172.16.0.1"),
            ("2130706433", "127.0.0.1"),
            ("0x7f.0.0.1", "127.0.0.1"),
            ("0177.0.0.1", "127.0.0.1"),
            ("0x", "0.0.0.0"),
            ("192.168.0.1.", "192.168.0.1"),
        ],
    )
    def test_normalizes(self, host: str, expected: str):
        """Test decimal, octal, hex and shorthand forms."""
        assert str(parse_ipv4_literal(host)) == expected

    @pytest.mark.parametrize(
        "host", ["example.com", "", "1.2.3.4.5", "256.0.0.1", "1.16777216", "4294967296", "0x1g"]
    )
    def test_non_literals(self, host: str):
        """Test that names and out-of-range values are not literals."""
        assert parse_ipv4_literal(host) is None


class TestExtensionPolicy:
    """Tests for ExtensionPolicy."""

    def test_empty_policy_allows_everything(self):
        """Test that an empty allow-list passes every name."""
        policy = ExtensionPolicy.from_string("")

        assert policy.check("anything.exe").is_valid
        assert policy.check("no_extension").is_valid

    def test_case_insensitive_match(self):
        """Test that suffix matching ignores case."""
        policy = ExtensionPolicy.from_string(".JPG, .png")

        assert policy.extensions == (".jpg", ".png")
        assert policy.check("photo.JpG").is_valid

    def test_disallowed_extension(self):
        """Test that a non-listed suffix is rejected with the allowed list."""
        policy = ExtensionPolicy.from_string(".jpg,.png")
        result = policy.check("setup.exe")

        assert result.is_valid is False
        assert result.error_code == RejectionCode.DISALLOWED_EXTENSION
        assert result.error_message == "File extension .exe is not allowed. Allowed: .jpg, .png"

    def test_missing_extension(self):
        """Test that a name without a dot is rejected when a list is set."""
        policy = ExtensionPolicy([".zip"])
        result = policy.check("README")

        assert result.is_valid is False
        assert result.error_code == RejectionCode.MISSING_EXTENSION
        assert result.error_message == "File has no extension. An extension is required."


class TestParseSize:
    """Tests for parse_size."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("10gb", 10 * 1024**3),
            ("512 KB", 512 * 1024),
            ("1.5mb", int(1.5 * 1024**2)),
            ("100", 100),
            ("42b", 42),
        ],
    )
    def test_valid_sizes(self, raw: str, expected: int):
        """Test parsing of human sizes."""
        assert parse_size(raw) == expected

    @pytest.mark.parametrize("raw", ["", "lots", "10tb", "-5mb"])
    def test_unparsable_falls_back(self, raw: str):
        """Test the 100 MiB fallback."""
        assert parse_size(raw) == DEFAULT_SIZE_FALLBACK


class TestFilenameFromUrl:
    """Tests for filename_from_url."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/sample.txt", "sample.txt"),
            ("https://example.com/dir/archive.tar.gz?x=1", "archive.tar.gz"),
            ("https://example.com/", ""),
            ("https://example.com", ""),
        ],
    )
    def test_last_segment(self, url: str, expected: str):
        """Test extraction of the last path segment."""
        assert filename_from_url(url) == expected
