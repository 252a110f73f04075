"""Tests for faultline.core.result module."""

import pytest

from faultline.core.errors import DomainError, ResourceExhaustedError, WrappedSystemError
from faultline.core.result import Err, Ok, try_result


class TestOk:
    """Test Ok result type."""

    def test_unwrap(self):
        result = Ok(42)
        assert result.is_ok()
        assert result.unwrap() == 42

    def test_unwrap_err_raises(self):
        with pytest.raises(ValueError):
            Ok(1).unwrap_err()

    def test_map_err_is_skipped(self):
        assert Ok(1).map_err(lambda e: DomainError("never")) == Ok(1)

    def test_to_dict(self):
        assert Ok(5).to_dict() == {"ok": True, "value": 5}


class TestErr:
    """Test Err result type."""

    def test_unwrap_raises_stored_error(self):
        error = DomainError("bad")
        with pytest.raises(DomainError) as exc_info:
            Err(error).unwrap()
        assert exc_info.value is error

    def test_is_not_ok(self):
        error = DomainError("bad")
        result = Err(error)
        assert not result.is_ok()
        assert result.unwrap_err() is error

    def test_map_err(self):
        result = Err(DomainError("bad")).map_err(lambda e: e.with_context(path="0"))
        assert result.unwrap_err().context.path == "0"

    def test_to_dict(self):
        d = Err(DomainError("bad")).to_dict()
        assert d["ok"] is False
        assert d["error"]["error_type"] == "DomainError"

    def test_to_dict_foreign_error(self):
        d = Err(ValueError("plain")).to_dict()
        assert d["error"] == {"error_type": "ValueError", "message": "plain"}


class TestTryResult:
    """try_result() captures and classifies failures."""

    def test_ok(self):
        assert try_result(lambda: 3) == Ok(3)

    def test_classifies_system_error(self):
        def boom():
            raise OSError("disk")

        result = try_result(boom)
        assert isinstance(result.unwrap_err(), WrappedSystemError)

    def test_classifies_memory_error(self):
        def boom():
            raise MemoryError()

        assert isinstance(try_result(boom).unwrap_err(), ResourceExhaustedError)

    def test_domain_error_kept(self):
        error = DomainError("bad")

        def boom():
            raise error

        assert try_result(boom).unwrap_err() is error
