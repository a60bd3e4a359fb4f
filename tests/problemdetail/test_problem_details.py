"""Tests for problemdetail.problem_details module.

Tests cover derivation of each body member from exception classes and
their marked members, media types, memoization and logging dispatch.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import textwrap
from http import HTTPStatus
from typing import Annotated

import pytest

from problemdetail.markers import (
    Detail,
    Extension,
    Instance,
    LogLevel,
    detail,
    extension,
    instance,
    logging_policy,
    problem_type,
    status,
    title,
)
from problemdetail.problem_details import (
    URN_PROBLEM_TYPE_PREFIX,
    StandaloneProblemDetails,
    build_type_uri,
)


class OutOfCreditException(Exception):
    pass


@status(HTTPStatus.FORBIDDEN)
class InsufficientFundsException(Exception):
    balance: Annotated[int, Extension()]
    cost: Annotated[int, Extension("price")]
    account: Annotated[str, Instance()]

    def __init__(self, message: str, *, balance: int, cost: int, account: str) -> None:
        super().__init__(message)
        self.balance = balance
        self.cost = cost
        self.account = account


class OverdrawnException(InsufficientFundsException):
    pass


@problem_type("https://example.com/probs/out-of-credit")
@title("You do not have enough credit.")
class ExplicitException(Exception):
    pass


class DerivedFromExplicitException(ExplicitException):
    pass


class InvalidAmountError(ValueError):
    pass


@status(HTTPStatus.CONFLICT)
class ConflictingAmountError(ValueError):
    pass


class TwoDetailsException(Exception):
    text: Annotated[str, Detail()]

    def __init__(self, text: str) -> None:
        super().__init__("ignored message")
        self.text = text

    @detail
    def first(self) -> str:
        return "from method"


class BrokenMembersException(Exception):
    missing: Annotated[str, Extension()]

    @extension
    def needs_arg(self, value: int) -> int:
        return value

    @extension
    def explodes(self) -> str:
        msg = "boom"
        raise RuntimeError(msg)

    @property
    @extension("computed")
    def computed_value(self) -> int:
        return 7


class InstanceOrderException(Exception):
    field_instance: Annotated[str | None, Instance()]

    def __init__(self, field_instance: str | None) -> None:
        super().__init__("instance order")
        self.field_instance = field_instance

    @instance
    def method_instance(self) -> str:
        return "from-method"


class CollidingExtensionException(Exception):
    status: Annotated[int, Extension()]
    note: Annotated[str, Extension()]

    def __init__(self) -> None:
        super().__init__("colliding")
        self.status = 999
        self.note = "kept"


class CountingException(Exception):
    calls = 0

    @detail
    def counted(self) -> str:
        type(self).calls += 1
        return "counted detail"


class TestTypeAndTitle:
    """Tests for the derived and declared type URI and title."""

    def test_derives_type_and_title_from_class_name(self) -> None:
        """Type and title are derived from the class name without Exception suffix."""
        body = StandaloneProblemDetails(OutOfCreditException("no money")).body

        assert body["type"] == "urn:problem-type:out-of-credit"
        assert body["title"] == "Out Of Credit"

    def test_error_suffix_is_kept(self) -> None:
        """Only an Exception suffix is stripped."""
        body = StandaloneProblemDetails(InvalidAmountError("negative")).body

        assert body["type"] == "urn:problem-type:invalid-amount-error"
        assert body["title"] == "Invalid Amount Error"

    def test_explicit_type_and_title(self) -> None:
        """Declared type URI and title are used verbatim."""
        body = StandaloneProblemDetails(ExplicitException()).body

        assert body["type"] == "https://example.com/probs/out-of-credit"
        assert body["title"] == "You do not have enough credit."

    def test_type_and_title_are_not_inherited(self) -> None:
        """A subclass derives its own type and title."""
        body = StandaloneProblemDetails(DerivedFromExplicitException()).body

        assert body["type"] == "urn:problem-type:derived-from-explicit"
        assert body["title"] == "Derived From Explicit"

    def test_build_type_uri_on_class(self) -> None:
        """build_type_uri works on the class alone."""
        assert build_type_uri(OutOfCreditException) == URN_PROBLEM_TYPE_PREFIX + "out-of-credit"
        assert build_type_uri(ExplicitException) == "https://example.com/probs/out-of-credit"


class TestStatus:
    """Tests for status resolution."""

    def test_undeclared_defaults_to_internal_server_error(self) -> None:
        """Exceptions without declared status get 500."""
        problem = StandaloneProblemDetails(OutOfCreditException())

        assert problem.status is HTTPStatus.INTERNAL_SERVER_ERROR
        assert problem.body["status"] == 500

    def test_declared_status(self) -> None:
        """Declared status wins."""
        error = InsufficientFundsException("x", balance=30, cost=50, account="a")

        assert StandaloneProblemDetails(error).status == HTTPStatus.FORBIDDEN

    def test_status_is_inherited(self) -> None:
        """A subclass inherits the declared status."""
        error = OverdrawnException("x", balance=30, cost=50, account="a")

        assert StandaloneProblemDetails(error).status == HTTPStatus.FORBIDDEN

    @pytest.mark.parametrize(
        "error",
        [ValueError("bad"), InvalidAmountError("negative")],
    )
    def test_value_errors_are_bad_requests(self, error: ValueError) -> None:
        """ValueError and its subclasses map to 400."""
        assert StandaloneProblemDetails(error).status == HTTPStatus.BAD_REQUEST

    def test_declared_status_beats_value_error(self) -> None:
        """A declared status overrides the ValueError mapping."""
        assert StandaloneProblemDetails(ConflictingAmountError()).status == HTTPStatus.CONFLICT

    def test_status_decorator_rejects_unknown_codes(self) -> None:
        """Unknown status codes are rejected when declared."""
        with pytest.raises(ValueError, match="799"):
            status(799)


class TestDetail:
    """Tests for the detail member."""

    def test_message_is_detail_without_markers(self) -> None:
        """The exception message is the detail when no member is marked."""
        body = StandaloneProblemDetails(OutOfCreditException("balance is 30")).body

        assert body["detail"] == "balance is 30"

    def test_empty_message_omits_detail(self) -> None:
        """An empty message produces no detail member."""
        body = StandaloneProblemDetails(OutOfCreditException()).body

        assert "detail" not in body

    def test_marked_methods_then_fields_joined(self) -> None:
        """Detail members are joined with '. ', methods before fields."""
        body = StandaloneProblemDetails(TwoDetailsException("from field")).body

        assert body["detail"] == "from method. from field"


class TestInstance:
    """Tests for the instance member."""

    def test_marked_field_is_instance(self) -> None:
        """A marked field provides the instance URI."""
        error = InsufficientFundsException("x", balance=30, cost=50, account="order-42")

        assert StandaloneProblemDetails(error).body["instance"] == "order-42"

    def test_field_wins_over_method(self) -> None:
        """Marked fields are consulted before marked methods."""
        body = StandaloneProblemDetails(InstanceOrderException("from-field")).body

        assert body["instance"] == "from-field"

    def test_method_used_when_field_is_none(self) -> None:
        """A None field falls through to the marked method."""
        body = StandaloneProblemDetails(InstanceOrderException(None)).body

        assert body["instance"] == "from-method"

    def test_random_urn_uuid_by_default(self) -> None:
        """Without marked members the instance is a fresh urn:uuid."""
        first = StandaloneProblemDetails(OutOfCreditException()).body["instance"]
        second = StandaloneProblemDetails(OutOfCreditException()).body["instance"]

        assert isinstance(first, str)
        assert first.startswith("urn:uuid:")
        assert first != second

    def test_invalid_instance_is_wrapped_in_urn(self) -> None:
        """Spaces make the value a urn with '+' separators."""
        error = InsufficientFundsException("x", balance=1, cost=2, account="bad uri")

        assert StandaloneProblemDetails(error).body["instance"] == "urn:bad+uri"

    def test_unrepairable_instance_becomes_diagnostic_uri(self) -> None:
        """Values that stay invalid are reported in a diagnostic URI."""
        error = InsufficientFundsException("x", balance=1, cost=2, account="bad\x00uri")

        instance_uri = StandaloneProblemDetails(error).body["instance"]

        assert instance_uri == (
            "urn:invalid-uri-syntax?source=bad%00uri"
            "&exception=URISyntaxError%3A%20Illegal%20character%20in%20path"
            "%20at%20index%203%3A%20bad%00uri"
        )


class TestExtensions:
    """Tests for extension members."""

    def test_extensions_sorted_and_renamed(self) -> None:
        """Extensions use declared names and are sorted by key after core members."""
        error = InsufficientFundsException("x", balance=30, cost=50, account="order-42")

        body = StandaloneProblemDetails(error).body

        assert list(body) == ["type", "title", "status", "detail", "instance", "balance", "price"]
        assert body["balance"] == 30
        assert body["price"] == 50

    def test_failing_members_render_diagnostics(self) -> None:
        """Member failures become diagnostic strings instead of exceptions."""
        body = StandaloneProblemDetails(BrokenMembersException("broken")).body

        assert body["needs_arg"] == (
            "could not invoke BrokenMembersException.needs_arg: expected no args but got 1"
        )
        assert body["explodes"] == (
            "could not invoke BrokenMembersException.explodes: RuntimeError: boom"
        )
        assert isinstance(body["missing"], str)
        assert body["missing"].startswith(
            "could not get BrokenMembersException.missing: AttributeError: "
        )

    def test_marked_property(self) -> None:
        """Marked properties are read like fields under their declared name."""
        body = StandaloneProblemDetails(BrokenMembersException("broken")).body

        assert body["computed"] == 7

    def test_core_member_collision_is_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Extensions named like core members are dropped with a warning."""
        caplog.set_level(logging.WARNING, logger="problemdetail.problem_details")

        body = StandaloneProblemDetails(CollidingExtensionException()).body

        assert body["status"] == 500
        assert body["note"] == "kept"
        assert any("collides with a core member" in r.getMessage() for r in caplog.records)


class TestMediaType:
    """Tests for media type derivation."""

    def test_defaults_to_configured_subtype(self) -> None:
        """The configured subtype is json unless overridden."""
        assert StandaloneProblemDetails(OutOfCreditException()).media_type == (
            "application/problem+json"
        )

    def test_configured_subtype(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """PROBLEMDETAIL_MEDIA_SUBTYPE selects the subtype."""
        monkeypatch.setenv("PROBLEMDETAIL_MEDIA_SUBTYPE", "xml")

        problem = StandaloneProblemDetails(OutOfCreditException())

        assert problem.media_type == "application/problem+xml"

    @pytest.mark.parametrize(
        ("subtype", "expected"),
        [
            ("json", "application/problem+json"),
            ("xml", "application/problem+xml"),
            ("xhtml+xml", "text/html"),
        ],
    )
    def test_explicit_subtype(self, subtype: str, expected: str) -> None:
        """Explicit subtypes map to problem media types, xhtml to text/html."""
        problem = StandaloneProblemDetails(OutOfCreditException(), media_subtype=subtype)

        assert problem.media_type == expected


class TestMemoization:
    """Tests for lazily computed and cached results."""

    def test_body_is_built_once(self, caplog: pytest.LogCaptureFixture) -> None:
        """Repeated access and logging reuse the computed body."""
        caplog.set_level(logging.DEBUG)
        CountingException.calls = 0
        problem = StandaloneProblemDetails(CountingException())

        assert problem.body is problem.body
        problem.log().log()

        channel = f"{CountingException.__module__}.{CountingException.__qualname__}"
        records = [r for r in caplog.records if r.name == channel]
        assert len(records) == 2
        assert CountingException.calls == 1

    def test_log_message_lists_body(self) -> None:
        """The log message lists every body member."""
        error = InsufficientFundsException("x", balance=30, cost=50, account="order-42")

        message = StandaloneProblemDetails(error).log_message

        assert message.startswith("ProblemDetail:\n")
        assert "  type: urn:problem-type:insufficient-funds\n" in message
        assert "  price: 50\n" in message
        assert message.endswith("\nException")


@logging_policy(at=LogLevel.WARNING)
class WarnedException(Exception):
    pass


@logging_policy(at=LogLevel.INFO)
class InformedException(Exception):
    pass


@logging_policy(at=LogLevel.DEBUG)
class DebuggedException(Exception):
    pass


@logging_policy(at=LogLevel.ERROR)
@status(HTTPStatus.NOT_FOUND)
class ErroredException(Exception):
    pass


@logging_policy(at=LogLevel.OFF)
class SilencedException(Exception):
    pass


@logging_policy(to="billing.problems")
@status(HTTPStatus.PAYMENT_REQUIRED)
class RoutedException(Exception):
    pass


class TestLogging:
    """Tests for log dispatch by level and channel."""

    @staticmethod
    def _records(caplog: pytest.LogCaptureFixture, kind: type[BaseException]) -> list[logging.LogRecord]:
        channel = f"{kind.__module__}.{kind.__qualname__}"
        return [r for r in caplog.records if r.name == channel]

    def test_auto_logs_client_errors_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        """AUTO logs 4xx at DEBUG without traceback."""
        caplog.set_level(logging.DEBUG)
        error = InsufficientFundsException("x", balance=1, cost=2, account="a")

        StandaloneProblemDetails(error).log()

        (record,) = self._records(caplog, InsufficientFundsException)
        assert record.levelno == logging.DEBUG
        assert record.exc_info is None
        assert record.problem_status == 403  # type: ignore[attr-defined]
        assert record.problem_type == "urn:problem-type:insufficient-funds"  # type: ignore[attr-defined]
        assert record.problem_instance == "a"  # type: ignore[attr-defined]

    def test_auto_logs_server_errors_at_error(self, caplog: pytest.LogCaptureFixture) -> None:
        """AUTO logs 5xx at ERROR with traceback."""
        caplog.set_level(logging.DEBUG)
        error = OutOfCreditException("no money")

        StandaloneProblemDetails(error).log()

        (record,) = self._records(caplog, OutOfCreditException)
        assert record.levelno == logging.ERROR
        assert record.exc_info is not None
        assert record.exc_info[1] is error

    @pytest.mark.parametrize(
        ("kind", "level", "with_traceback"),
        [
            (WarnedException, logging.WARNING, True),
            (InformedException, logging.INFO, False),
            (DebuggedException, logging.DEBUG, False),
            (ErroredException, logging.ERROR, True),
        ],
    )
    def test_declared_levels(
        self,
        caplog: pytest.LogCaptureFixture,
        kind: type[Exception],
        level: int,
        with_traceback: bool,
    ) -> None:
        """Declared levels are used regardless of status."""
        caplog.set_level(logging.DEBUG)

        StandaloneProblemDetails(kind("boom")).log()

        (record,) = self._records(caplog, kind)
        assert record.levelno == level
        assert (record.exc_info is not None) is with_traceback

    def test_off_logs_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        """OFF suppresses the record."""
        caplog.set_level(logging.DEBUG)

        problem = StandaloneProblemDetails(SilencedException("quiet"))

        assert problem.log() is problem
        assert self._records(caplog, SilencedException) == []

    def test_declared_channel(self, caplog: pytest.LogCaptureFixture) -> None:
        """A declared channel replaces the class name channel."""
        caplog.set_level(logging.DEBUG)

        StandaloneProblemDetails(RoutedException()).log()

        assert [r.levelno for r in caplog.records if r.name == "billing.problems"] == [
            logging.DEBUG
        ]

    def test_channel_gets_no_handler(self) -> None:
        """Logging leaves the handlers of the problem channel untouched."""
        channel = logging.getLogger("billing.problems")
        channel.handlers.clear()

        StandaloneProblemDetails(RoutedException()).log()

        assert channel.handlers == []

    def test_unconfigured_application_reports_to_stderr(self) -> None:
        """Without any logging setup, server errors reach stderr through lastResort."""
        script = textwrap.dedent(
            """
            from problemdetail import StandaloneProblemDetails

            class PaymentGatewayDownException(Exception):
                pass

            StandaloneProblemDetails(PaymentGatewayDownException("gateway down")).log()
            """
        )
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(p for p in sys.path if p)}

        result = subprocess.run(
            [sys.executable, "-c", script],
            capture_output=True,
            text=True,
            env=env,
            check=True,
        )

        assert "ProblemDetail:\n" in result.stderr
        assert "type: urn:problem-type:payment-gateway-down" in result.stderr
        assert "PaymentGatewayDownException: gateway down" in result.stderr
