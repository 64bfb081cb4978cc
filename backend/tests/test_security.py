"""Tests for token, password and backup-code helpers."""

from __future__ import annotations

import logging
from datetime import timedelta

from backend.app.core.logging_config import RequestIdFilter, build_logging_config, request_id_var
from backend.app.core.security import (
    ACCESS_SCOPE,
    TWO_FACTOR_SCOPE,
    create_access_token,
    create_two_factor_token,
    decode_token,
    get_password_hash,
    hash_backup_code,
    normalize_backup_code,
    validate_password_strength,
    verify_password,
)


class TestTokens:
    def test_scopes_are_not_interchangeable(self) -> None:
        access = create_access_token("user-1")
        pending = create_two_factor_token("user-1")

        assert decode_token(access, ACCESS_SCOPE) == "user-1"
        assert decode_token(access, TWO_FACTOR_SCOPE) is None
        assert decode_token(pending, TWO_FACTOR_SCOPE) == "user-1"
        assert decode_token(pending, ACCESS_SCOPE) is None

    def test_expired_token_rejected(self) -> None:
        token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
        assert decode_token(token, ACCESS_SCOPE) is None

    def test_garbage_rejected(self) -> None:
        assert decode_token("not-a-jwt", ACCESS_SCOPE) is None


class TestPasswords:
    def test_hash_and_verify(self) -> None:
        hashed = get_password_hash("Secret123")
        assert hashed != "Secret123"
        assert verify_password("Secret123", hashed)
        assert not verify_password("secret123", hashed)

    def test_strength_rules(self) -> None:
        assert validate_password_strength("Ab1") is not None
        assert validate_password_strength("abcdef1") is not None
        assert validate_password_strength("ABCDEF1") is not None
        assert validate_password_strength("Abcdefg") is not None
        assert validate_password_strength("Abcdef1") is None


class TestBackupCodeHash:
    def test_normalisation(self) -> None:
        assert normalize_backup_code(" ab12-cd34 ") == "AB12CD34"
        assert hash_backup_code("ab12-cd34") == hash_backup_code("AB12CD34")

    def test_hash_is_not_plaintext(self) -> None:
        digest = hash_backup_code("AB12CD34")
        assert "AB12CD34" not in digest
        assert len(digest) == 64


class TestLoggingConfig:
    def test_console_only_without_log_dir(self) -> None:
        config = build_logging_config("info")
        assert list(config["handlers"]) == ["console"]
        assert config["loggers"]["backend"]["level"] == "INFO"

    def test_file_handlers_with_log_dir(self, tmp_path) -> None:
        config = build_logging_config("debug", str(tmp_path))
        assert set(config["handlers"]) == {"console", "combined_file", "error_file"}
        assert config["handlers"]["error_file"]["level"] == "ERROR"

    def test_records_carry_request_id(self) -> None:
        record = logging.LogRecord("backend.test", logging.INFO, __file__, 1, "msg", None, None)
        token = request_id_var.set("req-42")
        try:
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "req-42"
