"""Tests for fabrication checks on generated replies."""

from __future__ import annotations

import pytest

from itsm_grounding.config import FabricationClass, ValidationMode
from itsm_grounding.grounding.application import GroundingValidator
from itsm_grounding.grounding.domain import GroundedFactSet
from tests.fakes.records import OTHER_ID, REQUESTER_ID

FABRICATED_ID = "9F8E7D6C5B4A39281706F5E4D3C2B1A0"


@pytest.fixture
def facts() -> GroundedFactSet:
    return GroundedFactSet(facts={
        "requester": {"RecId": REQUESTER_ID, "email": "riley.requester@example.com"},
        "incident_number": "10452",
    })


class TestIdentifiers:
    def test_unknown_identifier_is_flagged_once_and_removed(self, facts: GroundedFactSet) -> None:
        text = f"Your profile is {FABRICATED_ID}; again {FABRICATED_ID.lower()}."
        result = GroundingValidator(facts).validate(text)

        assert not result.valid
        assert [v.fabrication_class for v in result.violations] == [FabricationClass.IDENTIFIER]
        assert FABRICATED_ID.lower() not in result.corrected_text.lower()
        assert result.corrected_text == "Your profile is [ID]; again [ID]."

    def test_known_identifier_in_any_case_passes(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate(f"Record {REQUESTER_ID.lower()} is yours.")
        assert result.valid
        assert result.corrected_text is None

    def test_only_unknown_identifiers_are_replaced(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate(f"{REQUESTER_ID} and {OTHER_ID}")
        assert result.corrected_text == f"{REQUESTER_ID} and [ID]"


class TestEmails:
    def test_unknown_email(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate("Contact casey.other@example.com for help.")
        assert result.classes() == [FabricationClass.EMAIL]
        assert result.corrected_text == "Contact [email on file] for help."

    def test_known_email_case_insensitive(self, facts: GroundedFactSet) -> None:
        assert GroundingValidator(facts).validate("Mail Riley.Requester@Example.com").valid


class TestReferenceNumbers:
    def test_unknown_number(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate("See Incident #99999 for details.")
        assert [(v.fabrication_class, v.token) for v in result.violations] == [
            (FabricationClass.REFERENCE_NUMBER, "99999")
        ]
        assert result.corrected_text == "See Incident [unverified reference] for details."

    def test_known_number(self, facts: GroundedFactSet) -> None:
        assert GroundingValidator(facts).validate("Incident 10452 is in progress.").valid

    def test_short_numbers_are_not_references(self, facts: GroundedFactSet) -> None:
        assert GroundingValidator(facts).validate("Ticket 12 of your list").valid

    def test_request_prefixes(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate("SR 5521 and service request 7781")
        assert sorted(v.token for v in result.violations) == ["5521", "7781"]


class TestWriteClaims:
    def test_unconfirmed_submission_is_rewritten(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate("I've submitted the request for you.")
        assert result.classes() == [FabricationClass.WRITE_CLAIM]
        assert result.corrected_text == "I've prepared the request for your confirmation for you."

    def test_passive_claim(self, facts: GroundedFactSet) -> None:
        result = GroundingValidator(facts).validate("Your request has been submitted.")
        assert result.corrected_text == "Your request is ready for your confirmation."

    def test_confirmed_write_passes(self) -> None:
        confirmed = GroundedFactSet(facts={"request_created": True, "number": "7781"})
        assert GroundingValidator(confirmed).validate("Your request SR 7781 has been submitted.").valid


class TestFactSources:
    def test_digest_string(self) -> None:
        digest = "[INCIDENTS]:\n1. Incident #10452: \"VPN\" - Active"
        validator = GroundingValidator(digest)
        assert validator.validate("Incident 10452 is active").valid
        assert not validator.validate("Incident 10453 is active").valid

    def test_digest_confirmation(self) -> None:
        validator = GroundingValidator('{"draft_created": true}')
        assert validator.validate("The ticket has been created.").valid

    def test_plain_mapping(self) -> None:
        validator = GroundingValidator({"email": "a@example.com"})
        assert validator.validate("write to a@example.com").valid


class TestModes:
    TEXT = "Contact casey.other@example.com"

    def test_advisory_keeps_original(self, facts: GroundedFactSet) -> None:
        result, shown = GroundingValidator(facts).review(self.TEXT, ValidationMode.ADVISORY)
        assert not result.valid
        assert shown == self.TEXT

    def test_corrective_shows_corrected(self, facts: GroundedFactSet) -> None:
        shown = GroundingValidator(facts).apply(self.TEXT, ValidationMode.CORRECTIVE)
        assert shown == "Contact [email on file]"

    def test_clean_text_is_returned_unchanged(self, facts: GroundedFactSet) -> None:
        result, shown = GroundingValidator(facts).review("All good.", ValidationMode.CORRECTIVE)
        assert result.valid
        assert shown == "All good."

    def test_validation_never_raises(self, facts: GroundedFactSet, monkeypatch: pytest.MonkeyPatch) -> None:
        def explode(self, text):
            raise RuntimeError("regex engine on fire")

        monkeypatch.setattr(GroundingValidator, "_check", explode)
        result = GroundingValidator(facts).validate(f"{FABRICATED_ID}")

        assert result.valid
        assert result.violations == []

    def test_empty_text(self, facts: GroundedFactSet) -> None:
        assert GroundingValidator(facts).validate("").valid
