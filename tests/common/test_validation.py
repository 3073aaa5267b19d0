"""Unit tests for configuration validation helpers."""

import pytest

from traffic_translator.common.validation import (
    ValidationError,
    ValidationIssue,
    as_int,
    optional_non_empty_str,
    require_choice,
    require_positive_int,
)


class TestValidation:

    def test_error_message_joins_issues(self):
        err = ValidationError([ValidationIssue("$.a", "bad"), ValidationIssue("$.b", "worse")])

        assert str(err) == "$.a: bad; $.b: worse"
        assert isinstance(err, ValueError)

    def test_as_int_rejects_bool(self):
        with pytest.raises(ValidationError):
            as_int(False, path="$.x")

    def test_require_positive_int(self):
        assert require_positive_int(5, path="$.x") == 5
        with pytest.raises(ValidationError):
            require_positive_int(0, path="$.x")

    def test_optional_str(self):
        assert optional_non_empty_str(None, path="$.x") is None
        with pytest.raises(ValidationError):
            optional_non_empty_str("   ", path="$.x")

    def test_require_choice(self):
        assert require_choice("LOG", ("arff", "log"), path="$.f") == "log"
        with pytest.raises(ValidationError, match="arff, log"):
            require_choice("xml", ("arff", "log"), path="$.f")
