"""Tests for the cron secret check and the error taxonomy."""

import pytest

from autosend.core.errors import (
    AuthorizationError,
    AutoSendError,
    ComposeError,
    ConfigurationError,
    DispatchError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from autosend.core.security import extract_bearer_token, generate_cron_secret, verify_cron_token

SECRET = "s3cret-value"


class TestExtractBearerToken:
    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "Bearer ", "bearer abc", "Basic abc", "abc"])
    def test_malformed_headers(self, header):
        assert extract_bearer_token(header) is None


class TestVerifyCronToken:
    """The scheduled trigger fails closed."""

    def test_accepts_matching_secret(self):
        verify_cron_token(f"Bearer {SECRET}", SECRET)

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Bearer",
            "Bearer ",
            f"bearer {SECRET}",
            f"Token {SECRET}",
            SECRET,
            "Bearer wrong",
            f"Bearer {SECRET} ",
            f"Bearer {SECRET}x",
        ],
    )
    def test_rejects_malformed_or_wrong_tokens(self, header):
        with pytest.raises(AuthorizationError) as exc_info:
            verify_cron_token(header, SECRET)

        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("header", [None, "Bearer ", "Bearer anything"])
    def test_unset_secret_rejects_everything(self, header):
        with pytest.raises(ConfigurationError) as exc_info:
            verify_cron_token(header, "")

        assert exc_info.value.status_code == 500

    def test_generated_secrets_are_unique(self):
        assert generate_cron_secret() != generate_cron_secret()


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        ("error_cls", "status_code"),
        [
            (ValidationError, 400),
            (AuthorizationError, 401),
            (NotFoundError, 404),
            (ConfigurationError, 500),
            (StorageError, 500),
            (ComposeError, 422),
        ],
    )
    def test_status_codes(self, error_cls, status_code):
        error = error_cls("boom")

        assert isinstance(error, AutoSendError)
        assert error.status_code == status_code
        assert error.message == "boom"
        assert str(error) == "boom"

    def test_item_level_errors_are_auto_send_errors(self):
        assert issubclass(ComposeError, AutoSendError)
        assert issubclass(DispatchError, AutoSendError)
