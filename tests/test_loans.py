"""Tests for loan record sanitising and rendering."""

import pytest

from memberdesk.errors import GenerationError
from memberdesk.extraction import ExtractionAdapter
from memberdesk.llm import ModelSize
from memberdesk.loans import (
    INVALID_LOAN,
    NO_LOAN_MESSAGE,
    build_loan_prompt,
    canonical_timestamp,
    is_empty_loan_data,
    render_fallback,
    render_loan_response,
    sanitize_loan_data,
    sanitize_loan_object,
)
from memberdesk.models.loan import LoanInfoType, parse_info_type

from conftest import FakeTextGenerator

LOAN = {
    "loanAmount": 250000,
    "loanStatus": "active",
    "nextPaymentDate": "2025-03-25T00:00:00Z",
}


class TestParseInfoType:
    @pytest.mark.parametrize("raw, expected", [
        ("PAYMENT", LoanInfoType.PAYMENT),
        ("  amount.\n", LoanInfoType.AMOUNT),
        ('"STATUS"', LoanInfoType.STATUS),
        ("**HISTORY**", LoanInfoType.HISTORY),
        ("", LoanInfoType.DETAILS),
        ("I think it's about payments", LoanInfoType.DETAILS),
    ])
    def test_parse(self, raw, expected):
        assert parse_info_type(raw) == expected


class TestEmptyLoanData:
    @pytest.mark.parametrize("data", [None, {}, [], {"loans": []}, {"data": None}])
    def test_empty(self, data):
        assert is_empty_loan_data(data)

    @pytest.mark.parametrize("data", [LOAN, [LOAN], {"loans": [LOAN]}])
    def test_not_empty(self, data):
        assert not is_empty_loan_data(data)


class TestSanitize:
    def test_dates_and_amounts(self):
        result = sanitize_loan_object({"dueDate": "2025-03-25", "amountDue": 15000})
        assert result == {"dueDate": "2025-03-25T00:00:00.000Z", "amountDue": "15000.00"}

    def test_utc_timestamp_and_integer_amount(self):
        result = sanitize_loan_object({"dueDate": "2025-03-25T00:00:00Z", "amountDue": 50000})
        assert result == {"dueDate": "2025-03-25T00:00:00.000Z", "amountDue": "50000.00"}

    def test_drops_nulls_and_keeps_other_values(self):
        result = sanitize_loan_object({"loanStatus": "active", "officer": None, "tenure": 12})
        assert result == {"loanStatus": "active", "tenure": 12}

    def test_numeric_strings_with_commas(self):
        assert sanitize_loan_object({"outstandingBalance": "1,250.5"}) == {"outstandingBalance": "1250.50"}

    def test_non_numeric_amount_untouched(self):
        assert sanitize_loan_object({"paymentMethod": "salary deduction"}) == {
            "paymentMethod": "salary deduction",
        }

    def test_booleans_are_not_amounts(self):
        assert sanitize_loan_object({"paymentOverdue": False}) == {"paymentOverdue": False}

    def test_unparsable_date_untouched(self):
        assert sanitize_loan_object({"approvalDate": "sometime soon"}) == {"approvalDate": "sometime soon"}

    def test_nested_records(self):
        result = sanitize_loan_object({"schedule": [{"dueDate": "2025-04-01", "amount": 10}]})
        assert result == {"schedule": [{"dueDate": "2025-04-01T00:00:00.000Z", "amount": "10.00"}]}

    def test_list_payload(self):
        assert sanitize_loan_data([{"amount": 1}, "junk"]) == [{"amount": "1.00"}, INVALID_LOAN]

    def test_non_dict_object(self):
        assert sanitize_loan_object("oops") == INVALID_LOAN

    def test_canonical_timestamp_converts_offsets(self):
        assert canonical_timestamp("2025-03-25T01:30:00.123456+01:00") == "2025-03-25T00:30:00.123Z"


class TestRenderFallback:
    @pytest.mark.parametrize("info_type, expected", [
        (LoanInfoType.STATUS, "I found your loan information. Your current loan status is active."),
        (LoanInfoType.AMOUNT, "I found your loan information. Your loan amount is ₦250,000.00."),
        (LoanInfoType.PAYMENT, "I found your loan information. Your next payment is due on March 25, 2025."),
        (
            LoanInfoType.DETAILS,
            "I found your loan information. Your loan amount is ₦250,000.00, with status active, "
            "and next payment due on March 25, 2025.",
        ),
    ])
    def test_templates(self, info_type, expected):
        assert render_fallback(sanitize_loan_data(LOAN), info_type) == expected

    def test_eligibility_and_history_point_to_cooperative(self):
        assert "eligibility" in render_fallback(LOAN, LoanInfoType.ELIGIBILITY)
        assert "history" in render_fallback(LOAN, LoanInfoType.HISTORY)

    def test_missing_values(self):
        assert render_fallback({"notes": "x"}, LoanInfoType.STATUS).endswith("status is not specified.")

    def test_uses_first_record_of_list(self):
        text = render_fallback([{"loanStatus": "closed"}, {"loanStatus": "active"}], LoanInfoType.STATUS)
        assert text.endswith("closed.")

    @pytest.mark.parametrize("record", [
        {"principal_amount": "120000", "repayment_status": "running", "next_payment_on": "2025-05-01"},
        {"AmountApproved": 120000.0, "Status": "running", "DueDate": "2025-05-01T09:00:00+01:00"},
    ])
    def test_other_tenant_schemas(self, record):
        text = render_fallback(sanitize_loan_data(record), LoanInfoType.DETAILS)
        assert text == (
            "I found your loan information. Your loan amount is ₦120,000.00, with status running, "
            "and next payment due on May 1, 2025."
        )

    def test_due_date_key(self):
        text = render_fallback({"dueDate": "2025-04-01"}, LoanInfoType.PAYMENT)
        assert text.endswith("April 1, 2025.")


class TestRenderLoanResponse:
    async def test_empty_data_skips_model(self):
        gen = FakeTextGenerator(default="should not be used")
        reply = await render_loan_response([], LoanInfoType.DETAILS, ExtractionAdapter(gen))
        assert reply == NO_LOAN_MESSAGE
        assert gen.calls == []

    async def test_uses_large_model_with_sanitised_data(self):
        gen = FakeTextGenerator(default="Hello! Your loan of ₦250,000.00 is active.")
        reply = await render_loan_response(LOAN, LoanInfoType.AMOUNT, ExtractionAdapter(gen))

        assert reply == "Hello! Your loan of ₦250,000.00 is active."
        call = gen.calls[0]
        assert call["size"] == ModelSize.LARGE
        assert '"loanAmount": "250000.00"' in call["instruction"]
        assert "AMOUNT" in call["instruction"]

    async def test_generation_error_uses_fallback(self):
        gen = FakeTextGenerator().on("financial assistant", GenerationError("down"))
        reply = await render_loan_response(LOAN, LoanInfoType.STATUS, ExtractionAdapter(gen))
        assert reply == "I found your loan information. Your current loan status is active."

    @pytest.mark.parametrize("junk", ["", "   ", '{"reply": "x"}', "```json\n{}\n```"])
    async def test_unusable_output_uses_fallback(self, junk):
        gen = FakeTextGenerator(default=junk)
        reply = await render_loan_response(LOAN, LoanInfoType.STATUS, ExtractionAdapter(gen))
        assert reply.startswith("I found your loan information.")

    def test_prompt_mentions_focus(self):
        prompt = build_loan_prompt(sanitize_loan_data(LOAN), LoanInfoType.PAYMENT)
        assert "Next payment due date" in prompt
        assert "₦" in prompt
