"""Tests for secret redaction."""

from sytest.core.security import (
    REDACTED,
    redact_dict_secrets,
    redact_secrets,
    sanitize_log_message,
)


class TestRedactSecrets:
    """Tests for text redaction."""

    def test_access_token_query_parameter(self) -> None:
        text = "GET /sync?timeout=0&access_token=MDAxOGxvY2F0aW9u"
        assert redact_secrets(text) == "GET /sync?timeout=0&access_token=[REDACTED]"

    def test_access_token_in_json(self) -> None:
        text = '{"user_id": "@u-8001:localhost:8001", "access_token": "abc123"}'
        result = redact_secrets(text)
        assert "abc123" not in result
        assert '"access_token": "[REDACTED]"' in result
        assert "@u-8001:localhost:8001" in result

    def test_password_in_json(self) -> None:
        result = redact_secrets('{"username": "u-8001", "password": "f00b4r"}')
        assert "f00b4r" not in result
        assert "u-8001" in result

    def test_bearer_header(self) -> None:
        result = redact_secrets("Authorization: Bearer abcdefgh12345678")
        assert "abcdefgh12345678" not in result

    def test_synapse_token(self) -> None:
        result = redact_secrets("token syt_dS0xLTgwMDE_abcdefghij")
        assert "syt_" not in result
        assert REDACTED in result

    def test_plain_text_untouched(self) -> None:
        text = "Testing if: A room can be created (10rooms.py)"
        assert redact_secrets(text) == text

    def test_empty(self) -> None:
        assert redact_secrets("") == ""


class TestRedactDictSecrets:
    """Tests for structured redaction."""

    def test_register_body(self) -> None:
        body = {
            "username": "u-8001",
            "password": "f00b4r",
            "auth": {"type": "m.login.dummy", "session": "xyz"},
        }
        result = redact_dict_secrets(body)
        assert result == {
            "username": "u-8001",
            "password": REDACTED,
            "auth": {"type": "m.login.dummy", "session": "xyz"},
        }
        assert body["password"] == "f00b4r"

    def test_lists_descended(self) -> None:
        result = redact_dict_secrets([{"access_token": "a"}, {"other": 1}])
        assert result == [{"access_token": REDACTED}, {"other": 1}]

    def test_depth_limit(self) -> None:
        nested = {"a": {"password": "x"}}
        assert redact_dict_secrets(nested, max_depth=1) == {"a": {"password": "x"}}

    def test_scalars_returned(self) -> None:
        assert redact_dict_secrets(42) == 42
        assert redact_dict_secrets(None) is None


class TestSanitizeLogMessage:
    """Tests for log injection protection."""

    def test_newlines_escaped(self) -> None:
        assert sanitize_log_message("a\r\nb") == "a\\r\\nb"

    def test_ansi_stripped(self) -> None:
        assert sanitize_log_message("\x1b[31mred\x1b[0m") == "red"

    def test_truncated(self) -> None:
        result = sanitize_log_message("x" * 20000)
        assert len(result) <= 10000
        assert result.endswith("... [TRUNCATED]")
