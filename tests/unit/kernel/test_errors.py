"""Unit tests for the kernel error hierarchy."""

from __future__ import annotations

import json

import pytest

from taskbroker.config import ConfigError, InvalidSettingValueError
from taskbroker.kernel.errors import (
    ApplicationError,
    AuthenticationError,
    BaseError,
    BrokerError,
    ConnectionAttemptsExhaustedError,
    DomainError,
    InfrastructureError,
    MalformedMessageError,
    NotConnectedError,
    NotFoundError,
    PublishError,
    SerializationError,
    TopologyError,
    ValidationError,
)


class TestBaseError:
    def test_message_is_stored(self) -> None:
        err = BaseError("something went wrong")
        assert err.message == "something went wrong"
        assert str(err) == "something went wrong"

    def test_default_code(self) -> None:
        assert BaseError("m").code == "base_error"

    def test_custom_code(self) -> None:
        assert BaseError("m", code="custom").code == "custom"

    def test_cause_is_chained(self) -> None:
        cause = OSError("boom")
        err = BaseError("wrapped", cause=cause)
        assert err.__cause__ is cause
        assert "OSError" in err.to_dict()["cause"]

    def test_retryable_flag_is_serialised_when_set(self) -> None:
        assert BaseError("m").retryable is None
        assert BaseError("m", retryable=False).to_dict()["retryable"] is False

    def test_to_json_round_trips(self) -> None:
        err = BaseError("m", detail={"queue": "tasks.high"})
        data = json.loads(err.to_json())
        assert data == {"code": "base_error", "message": "m", "detail": {"queue": "tasks.high"}}


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [NotConnectedError, ConnectionAttemptsExhaustedError, PublishError, TopologyError],
    )
    def test_broker_errors_are_infrastructure(self, exc_type: type[BaseError]) -> None:
        assert issubclass(exc_type, BrokerError)
        assert issubclass(exc_type, InfrastructureError)

    def test_malformed_message_is_serialization_error(self) -> None:
        assert issubclass(MalformedMessageError, SerializationError)

    def test_permanent_errors_are_domain_errors(self) -> None:
        for exc_type in (ValidationError, NotFoundError, AuthenticationError):
            assert issubclass(exc_type, DomainError)

    def test_config_errors_are_application_errors(self) -> None:
        assert issubclass(ConfigError, ApplicationError)
        assert issubclass(InvalidSettingValueError, ConfigError)


class TestBrokerErrors:
    def test_not_connected_default_message(self) -> None:
        assert str(NotConnectedError()) == "RabbitMQ connection not established"
        assert NotConnectedError().code == "not_connected"

    def test_attempts_exhausted_carries_count(self) -> None:
        err = ConnectionAttemptsExhaustedError(10)
        assert err.attempts == 10
        assert err.detail == {"attempts": 10}
        assert "10 attempts" in str(err)

    def test_publish_error_default_message(self) -> None:
        err = PublishError("task.high.email")
        assert err.routing_key == "task.high.email"
        assert "task.high.email" in str(err)

    def test_publish_error_custom_message(self) -> None:
        assert str(PublishError("rk", "nacked")) == "nacked"


class TestDomainErrors:
    def test_not_found_message_with_identifier(self) -> None:
        err = NotFoundError("Document", 42)
        assert str(err) == "Document '42' not found"
        assert err.resource == "Document"

    def test_not_found_message_without_identifier(self) -> None:
        assert str(NotFoundError("Document")) == "Document not found"

    def test_validation_error_lists_field_errors(self) -> None:
        err = ValidationError("bad payload", errors=[{"field": "email"}])
        assert err.to_dict()["errors"] == [{"field": "email"}]
