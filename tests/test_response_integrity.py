"""
Tests for response decoding, digest verification and local rejection.

Run with: python -m pytest tests/ -v
"""

import base64
import dataclasses
import hashlib
import json
import logging
import os
import sys
import threading

import pytest

# Import our modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

FIXTURES = os.path.join(os.path.dirname(__file__), 'fixtures')
LICENCE_KEY = "A4123412341234"

# base64(sha256("M12345" "10000" "000" "105" "252" "MockAuthSuccess" LICENCE_KEY))
FIXTURE_DIGEST = "v0n8lKGaIvvyBOeJjPjAy6GgGvMd6/cRylt44Zd6MlM="
# Same tuple with the rejection error code "099"
REJECTED_DIGEST = "oTsINKsUhs3hlGKsQC+uBetnz8jtj9rWmA1jfZ/kDOQ="


def load_fixture(name: str) -> bytes:
    with open(os.path.join(FIXTURES, name), 'rb') as f:
        return f.read()


@pytest.fixture
def signed_response():
    from citypay.response import PaymentResponse
    return PaymentResponse.decode(load_fixture('sha256-example.json'))


class TestDecode:
    """Test lenient decoding of gateway packets."""

    def test_missing_data_example(self):
        from citypay.response import PaymentResponse

        response = PaymentResponse.decode(load_fixture('example1.json'))

        assert response.amount == 5500
        assert response.currency == "GBP"
        assert response.identifier == "Example1"

    def test_all_fields_reproduced(self, signed_response):
        r = signed_response

        assert r.amount == 10000
        assert r.currency == "GBP"
        assert r.auth_code == "M12345"
        assert r.authorised is True
        assert r.avs_response == "Y"
        assert r.csc_response == "M"
        assert r.error_code == "000"
        assert r.error_message == "Test Transaction"
        assert r.expiry_month == 12
        assert r.expiry_year == 2030
        assert r.identifier == "MockAuthSuccess"
        assert r.masked_pan == "400000******0002"
        assert r.merchant_id == 105
        assert r.mode == "test"
        assert r.result == 1
        assert r.digest == FIXTURE_DIGEST
        assert r.status == "O"
        assert r.title == "Mr"
        assert r.first_name == "Joe"
        assert r.last_name == "Bloggs"
        assert r.email == "joe@example.com"
        assert r.postcode == "JE2 4WE"
        assert r.transaction_number == 252

    def test_to_dict_matches_wire_packet(self, signed_response):
        packet = json.loads(load_fixture('sha256-example.json'))
        assert signed_response.to_dict() == packet

    def test_defaults_for_missing_fields(self):
        from citypay.response import PaymentResponse

        response = PaymentResponse.decode(b'{"amount": 5500}')

        assert response.transaction_number == -1
        assert response.result == 20
        assert response.error_code == "F007"
        assert response.error_message == "No valid response from JSON packet"
        assert response.identifier == "unknown"
        assert response.masked_pan == "n/a"
        assert response.merchant_id == 0
        assert response.mode == "?"
        assert response.status == "?"
        assert response.expiry_month == 0
        assert response.expiry_year == 0
        assert response.currency == ""
        assert response.digest == ""
        assert response.authorised is False
        assert response.auth_code is None
        assert response.email is None

    def test_missing_fields_dropped_from_wire_packet(self):
        from citypay.response import PaymentResponse

        packet = PaymentResponse.decode(b'{"amount": 5500}').to_dict()

        assert "authcode" not in packet
        assert "title" not in packet
        assert packet["transno"] == -1

    @pytest.mark.parametrize("body", [
        b'',
        b'not json',
        b'[1, 2, 3]',
        b'"a string"',
        b'\xff\xfe\x00',
        b'{"amount": ',
        b'[' * 100000 + b']' * 100000,
    ])
    def test_malformed_body_never_raises(self, body):
        from citypay.response import PaymentResponse

        response = PaymentResponse.decode(body)

        assert response.amount == 0
        assert response.error_code == "F007"
        assert response.authorised is False

    def test_wrong_types_fall_back_to_defaults(self):
        from citypay.response import PaymentResponse

        response = PaymentResponse.decode(json.dumps({
            "amount": "10000",
            "authorised": "true",
            "merchantid": True,
            "transno": None,
            "errorcode": 0,
            "authcode": 12345,
            "expMonth": 12.5,
        }))

        assert response.amount == 0
        assert response.authorised is False
        assert response.merchant_id == 0
        assert response.transaction_number == -1
        assert response.error_code == "F007"
        assert response.auth_code is None
        assert response.expiry_month == 0

    def test_integral_float_accepted(self):
        from citypay.response import PaymentResponse

        assert PaymentResponse.decode(b'{"amount": 10000.0}').amount == 10000

    def test_deeply_nested_body_falls_back_to_defaults(self):
        from citypay.response import PaymentResponse

        body = b'{"amount": ' + b'[' * 100000 + b']' * 100000 + b'}'
        response = PaymentResponse.decode(body)

        assert response.result == 20
        assert response.transaction_number == -1

    def test_parse_failure_logged_as_warning(self, caplog):
        from citypay.response import PaymentResponse

        with caplog.at_level(logging.WARNING, logger="citypay.response"):
            PaymentResponse.decode(b'not json')

        assert any(
            record.levelno == logging.WARNING and "Error parsing JSON" in record.getMessage()
            for record in caplog.records
        )

    def test_non_object_logged_as_warning(self, caplog):
        from citypay.response import PaymentResponse

        with caplog.at_level(logging.WARNING, logger="citypay.response"):
            PaymentResponse.decode(b'[1, 2]')

        assert [r.levelno for r in caplog.records] == [logging.WARNING]

    def test_valid_body_logs_nothing(self, caplog):
        from citypay.response import PaymentResponse

        with caplog.at_level(logging.WARNING, logger="citypay.response"):
            PaymentResponse.decode(load_fixture('sha256-example.json'))

        assert caplog.records == []

    def test_rejection_code_from_gateway(self):
        from citypay.response import PaymentResponse

        assert PaymentResponse.decode(b'{"errorcode": "099"}').has_rejection_code
        assert not PaymentResponse.decode(b'{"errorcode": "000"}').has_rejection_code

    def test_strict_decode_raises(self):
        from citypay.response import PaymentResponse

        with pytest.raises(ValueError):
            PaymentResponse.decode(b'not json', lenient=False)
        with pytest.raises(ValueError):
            PaymentResponse.decode(b'[]', lenient=False)

        # Missing fields still default
        assert PaymentResponse.decode(b'{}', lenient=False).result == 20

    def test_response_is_immutable(self, signed_response):
        with pytest.raises(dataclasses.FrozenInstanceError):
            signed_response.amount = 1

    def test_log_line_omits_digest(self, signed_response):
        line = signed_response.log_line()

        assert line == (
            "RS:MockAuthSuccess,amount=10000,card=400000******0002,"
            "122030,authorised=True,mode=test"
        )
        assert FIXTURE_DIGEST not in line


class TestDigestVerifier:
    """Test canonical string construction and digest checks."""

    def test_canonical_string_order(self, signed_response):
        from citypay.digest import DigestVerifier

        canonical = DigestVerifier.canonical_string(signed_response, LICENCE_KEY)

        assert canonical == "M1234510000000105252MockAuthSuccessA4123412341234"

    def test_canonical_string_without_authcode(self):
        from citypay.digest import DigestVerifier
        from citypay.response import PaymentResponse

        response = PaymentResponse.decode(load_fixture('example1.json'))

        assert DigestVerifier.canonical_string(response, "K") == "5500F0070-1Example1K"

    def test_canonical_string_error_code_override(self, signed_response):
        from citypay.digest import DigestVerifier

        canonical = DigestVerifier.canonical_string(
            signed_response, LICENCE_KEY, error_code="099"
        )

        assert canonical == "M1234510000099105252MockAuthSuccessA4123412341234"

    def test_digest_matches_sha256_base64(self):
        from citypay.digest import DigestVerifier

        canonical = "M1234510000000105252MockAuthSuccessA4123412341234"
        expected = base64.b64encode(
            hashlib.sha256(canonical.encode('utf-8')).digest()
        ).decode()

        assert DigestVerifier.digest(canonical) == expected == FIXTURE_DIGEST

    def test_digest_is_deterministic(self):
        from citypay.digest import DigestVerifier

        digests = {DigestVerifier.digest("same input") for _ in range(10)}
        assert len(digests) == 1

    def test_digest_of_non_ascii_input(self):
        from citypay.digest import DigestVerifier

        canonical = "Zoë-ørder-¥"
        expected = base64.b64encode(
            hashlib.sha256(canonical.encode('utf-8')).digest()
        ).decode()

        assert DigestVerifier.digest(canonical) == expected

    def test_fixture_digest_is_valid(self, signed_response):
        from citypay.digest import DigestVerifier

        assert DigestVerifier.is_valid(signed_response, LICENCE_KEY)

    def test_wrong_secret_is_invalid(self, signed_response):
        from citypay.digest import DigestVerifier

        assert not DigestVerifier.is_valid(signed_response, "A4123412341235")

    @pytest.mark.parametrize("change", [
        {"amount": 10001},
        {"auth_code": "M12346"},
        {"auth_code": None},
        {"error_code": "001"},
        {"merchant_id": 106},
        {"transaction_number": 253},
        {"identifier": "MockAuthSuccesS"},
    ])
    def test_altered_canonical_field_is_invalid(self, signed_response, change):
        from citypay.digest import DigestVerifier

        altered = dataclasses.replace(signed_response, **change)

        assert not DigestVerifier.is_valid(altered, LICENCE_KEY)

    def test_non_canonical_fields_do_not_affect_digest(self, signed_response):
        from citypay.digest import DigestVerifier

        altered = dataclasses.replace(
            signed_response, authorised=False, masked_pan="n/a", currency="EUR"
        )

        assert DigestVerifier.is_valid(altered, LICENCE_KEY)

    def test_comparison_is_case_sensitive(self, signed_response):
        from citypay.digest import DigestVerifier

        altered = dataclasses.replace(signed_response, digest=FIXTURE_DIGEST.lower())

        assert not DigestVerifier.is_valid(altered, LICENCE_KEY)

    def test_empty_digest_is_invalid(self, signed_response):
        from citypay.digest import DigestVerifier

        altered = dataclasses.replace(signed_response, digest="")

        assert not DigestVerifier.is_valid(altered, LICENCE_KEY)

    def test_unencodable_input_fails_closed(self, signed_response):
        from citypay.digest import DigestVerifier

        # Lone surrogate, as produced by json.loads('"\\ud800"')
        altered = dataclasses.replace(signed_response, identifier="\ud800")

        assert DigestVerifier.is_valid(altered, LICENCE_KEY) is False

    def test_non_ascii_provided_digest_is_invalid(self, signed_response):
        from citypay.digest import DigestVerifier

        altered = dataclasses.replace(signed_response, digest="dïgest")

        assert DigestVerifier.is_valid(altered, LICENCE_KEY) is False

    def test_sign_produces_valid_copy(self):
        from citypay.digest import DigestVerifier
        from citypay.response import PaymentResponse

        unsigned = PaymentResponse.decode(load_fixture('example1.json'))
        signed = DigestVerifier.sign(unsigned, LICENCE_KEY)

        assert unsigned.digest == ""
        assert signed.digest == "Kt4CO80ldDMeL71CppwBnd78QRLNRvD3BhLWqblSwoY="
        assert DigestVerifier.is_valid(signed, LICENCE_KEY)


class TestResponseReconciler:
    """Test local rejection of responses that fail verification."""

    def test_reject_overrides_outcome(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        rejected = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        assert rejected.authorised is False
        assert rejected.error_code == "099"
        assert rejected.result == 2
        assert rejected.error_message == "reason"
        assert rejected.digest == REJECTED_DIGEST
        assert rejected.has_rejection_code

    def test_rejected_response_is_digest_consistent(self, signed_response):
        from citypay.digest import DigestVerifier
        from citypay.reconciler import ResponseReconciler

        rejected = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        assert DigestVerifier.is_valid(rejected, LICENCE_KEY)

    def test_reject_copies_other_fields(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        rejected = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        overridden = {"authorised", "error_code", "error_message", "result", "digest"}
        for field in dataclasses.fields(signed_response):
            if field.name in overridden:
                continue
            assert getattr(rejected, field.name) == getattr(signed_response, field.name), field.name

    def test_reject_leaves_source_untouched(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        before = dataclasses.asdict(signed_response)
        rejected = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        assert rejected is not signed_response
        assert dataclasses.asdict(signed_response) == before

    def test_reject_is_repeatable(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        first = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")
        second = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        assert first == second

    def test_reject_unencodable_response_still_declines(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        hostile = dataclasses.replace(signed_response, identifier="\ud800")
        rejected = ResponseReconciler.reject(hostile, LICENCE_KEY, "reason")

        assert rejected.authorised is False
        assert rejected.error_code == "099"
        assert rejected.digest == ""

    def test_reconcile_keeps_valid_response(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        assert ResponseReconciler.reconcile(signed_response, LICENCE_KEY) is signed_response

    def test_reconcile_rejects_tampered_response(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        tampered = dataclasses.replace(signed_response, amount=100000)
        result = ResponseReconciler.reconcile(tampered, LICENCE_KEY)

        assert result.authorised is False
        assert result.error_message == "Digest mismatch"
        assert result.amount == 100000

    def test_reconciled_rejection_stays_rejected(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        tampered = dataclasses.replace(signed_response, amount=100000)
        rejected = ResponseReconciler.reconcile(tampered, LICENCE_KEY)

        assert ResponseReconciler.reconcile(rejected, LICENCE_KEY) is rejected

    def test_authorization_status(self, signed_response):
        from citypay.constants import AuthorizationStatus
        from citypay.reconciler import ResponseReconciler

        rejected = ResponseReconciler.reject(signed_response, LICENCE_KEY, "reason")

        assert ResponseReconciler.authorization_status(signed_response) == AuthorizationStatus.SUCCESS
        assert ResponseReconciler.authorization_status(rejected) == AuthorizationStatus.FAILURE

    def test_concurrent_verification_is_consistent(self, signed_response):
        from citypay.reconciler import ResponseReconciler

        tampered = dataclasses.replace(signed_response, amount=1)
        results = []
        lock = threading.Lock()

        def worker():
            outcome = (
                ResponseReconciler.reconcile(signed_response, LICENCE_KEY),
                ResponseReconciler.reconcile(tampered, LICENCE_KEY),
            )
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert all(trusted is signed_response for trusted, _ in results)
        assert len({rejected for _, rejected in results}) == 1
