"""Tests for the extraction adapter and its parsing helpers."""

import pytest

from memberdesk.errors import GenerationError, ResolutionFailure, ValidationFailure
from memberdesk.extraction import (
    ExtractionAdapter,
    is_numeric,
    is_usable_reply,
    is_valid_email,
    parse_json_response,
    strip_code_fences,
    validate_credentials,
)
from memberdesk.llm import ModelSize
from memberdesk.models.loan import LoanInfoType
from memberdesk.models.room import Credentials

from conftest import FakeTextGenerator


class TestHelpers:
    def test_valid_emails(self):
        assert is_valid_email("jane.doe@coop.org")
        assert is_valid_email("a@b.co")

    @pytest.mark.parametrize("value", ["", None, "jane", "jane@coop", "ja ne@coop.org", "@coop.org"])
    def test_invalid_emails(self, value):
        assert not is_valid_email(value)

    def test_is_numeric(self):
        assert is_numeric("123456")
        assert is_numeric(" 007 ")
        assert not is_numeric("12 34")
        assert not is_numeric("code 1234")
        assert not is_numeric("")

    def test_strip_fenced_json(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strip_unbalanced_fence(self):
        assert strip_code_fences('```json {"a": 1}') == '{"a": 1}'

    def test_parse_json_with_prose(self):
        assert parse_json_response('Sure! {"email": null} hope that helps') == {"email": None}

    def test_parse_json_garbage(self):
        with pytest.raises(ResolutionFailure):
            parse_json_response("I cannot help with that")

    def test_parse_json_empty(self):
        with pytest.raises(ResolutionFailure):
            parse_json_response("```json\n```")

    def test_usable_reply(self):
        assert is_usable_reply("Hello! Your loan is active.")
        assert not is_usable_reply("   ")
        assert not is_usable_reply('{"reply": "hi"}')
        assert not is_usable_reply("```\nhi\n```")

    def test_validate_credentials_email_first(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_credentials(Credentials())
        assert exc_info.value.field == "email"

    def test_validate_credentials_missing_employee_number(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_credentials(Credentials(email="a@b.co"))
        assert exc_info.value.field == "employee_number"

    def test_validate_credentials_ok(self):
        creds = Credentials(email="a@b.co", employee_number="FUS1")
        assert validate_credentials(creds) is creds


class TestExtractTenant:
    async def test_returns_model_answer(self):
        gen = FakeTextGenerator(default="Fusion\n")
        answer = await ExtractionAdapter(gen).extract_tenant("the blue one", ["FUSION", "CTLS"])
        assert answer == "Fusion"
        assert "FUSION, CTLS" in gen.calls[0]["instruction"]
        assert gen.calls[0]["stop"] == ["\n"]

    async def test_unknown_sentinel(self):
        gen = FakeTextGenerator(default="UNKNOWN")
        with pytest.raises(ResolutionFailure):
            await ExtractionAdapter(gen).extract_tenant("hello", ["FUSION"])

    async def test_generation_error(self):
        gen = FakeTextGenerator(default="").on("cooperative name", GenerationError("down"))
        with pytest.raises(ResolutionFailure):
            await ExtractionAdapter(gen).extract_tenant("hello", ["FUSION"])


class TestExtractCredentials:
    async def test_bare_email_skips_model(self):
        gen = FakeTextGenerator()
        creds = await ExtractionAdapter(gen).extract_credentials("  jane.doe@coop.org ")
        assert creds == Credentials(email="jane.doe@coop.org")
        assert gen.calls == []

    async def test_bare_employee_number_skips_model(self):
        gen = FakeTextGenerator()
        creds = await ExtractionAdapter(gen).extract_credentials("FUS00005")
        assert creds == Credentials(employee_number="FUS00005")
        assert gen.calls == []

    async def test_model_json(self):
        gen = FakeTextGenerator(
            default='```json\n{"email": "test@example.com", "employee_number": "FUS123"}\n```'
        )
        creds = await ExtractionAdapter(gen).extract_credentials(
            "my email is test@example.com and ID is FUS123"
        )
        assert creds == Credentials(email="test@example.com", employee_number="FUS123")

    async def test_model_nulls_and_numbers(self):
        gen = FakeTextGenerator(default='{"email": "null", "employee_number": 4521}')
        creds = await ExtractionAdapter(gen).extract_credentials("my number is 4521 ok")
        assert creds == Credentials(email=None, employee_number="4521")

    async def test_non_object_answer(self):
        gen = FakeTextGenerator(default='["a@b.co"]')
        with pytest.raises(ResolutionFailure):
            await ExtractionAdapter(gen).extract_credentials("here you go")

    async def test_bad_json(self):
        gen = FakeTextGenerator(default="email is a@b.co")
        with pytest.raises(ResolutionFailure):
            await ExtractionAdapter(gen).extract_credentials("here you go")


class TestExtractOtp:
    async def test_digits_fast_path(self):
        gen = FakeTextGenerator()
        assert await ExtractionAdapter(gen).extract_otp(" 007123 ") == "007123"
        assert gen.calls == []

    async def test_model_path(self):
        gen = FakeTextGenerator(default="482913")
        assert await ExtractionAdapter(gen).extract_otp("the code is 482913") == "482913"

    async def test_no_otp_sentinel(self):
        gen = FakeTextGenerator(default="NO_OTP")
        with pytest.raises(ResolutionFailure):
            await ExtractionAdapter(gen).extract_otp("I didn't get it")


class TestClassifyLoanQuery:
    async def test_known_category(self):
        gen = FakeTextGenerator(default="PAYMENT")
        assert await ExtractionAdapter(gen).classify_loan_query("when is it due?") == LoanInfoType.PAYMENT

    async def test_unknown_category_defaults_to_details(self):
        gen = FakeTextGenerator(default="SOMETHING ELSE")
        assert await ExtractionAdapter(gen).classify_loan_query("loan?") == LoanInfoType.DETAILS

    async def test_generation_error_defaults_to_details(self):
        gen = FakeTextGenerator().on("loan information", GenerationError("down"))
        assert await ExtractionAdapter(gen).classify_loan_query("loan?") == LoanInfoType.DETAILS


class TestComposeReply:
    async def test_uses_model_text(self):
        gen = FakeTextGenerator(default="  All done, fresh start!  ")
        assert await ExtractionAdapter(gen).compose_reply("say hi", "fallback") == "All done, fresh start!"

    async def test_blank_falls_back(self):
        gen = FakeTextGenerator(default="")
        assert await ExtractionAdapter(gen).compose_reply("say hi", "fallback") == "fallback"

    async def test_error_falls_back(self):
        gen = FakeTextGenerator().on("say hi", GenerationError("down"))
        assert await ExtractionAdapter(gen).compose_reply("say hi", "fallback") == "fallback"

    async def test_size_is_passed_through(self):
        gen = FakeTextGenerator(default="ok")
        await ExtractionAdapter(gen).compose_reply("say hi", "fallback", size=ModelSize.LARGE)
        assert gen.calls[0]["size"] == ModelSize.LARGE
