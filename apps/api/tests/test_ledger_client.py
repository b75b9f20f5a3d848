"""Tests for ledger clients and signature recovery."""

from unittest.mock import MagicMock

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import ContractLogicError

from courier_api.errors import InvalidSignature, LedgerUnavailable
from courier_api.ledger.client import ContractLedgerClient, StaticLedgerClient
from courier_api.ledger.signatures import SignatureVerifier

THREAD = "0x" + "ab" * 32
CONTRACT = "0x" + "12" * 20


@pytest.fixture
def contract_client():
    client = ContractLedgerClient("http://localhost:8545", CONTRACT, timeout_seconds=1)
    client.contract = MagicMock()
    return client


def test_contract_client_returns_total_messages(contract_client, alice):
    get_read_status = contract_client.contract.functions.getReadStatus
    get_read_status.return_value.call.return_value = (2, 7, 5, 0)

    assert contract_client.confirmed_count(THREAD, alice.address.lower()) == 7

    thread_arg, participant_arg = get_read_status.call_args[0]
    assert thread_arg == bytes.fromhex("ab" * 32)
    assert participant_arg == alice.address


def test_contract_revert_means_unknown_thread(contract_client, alice):
    contract_client.contract.functions.getReadStatus.return_value.call.side_effect = (
        ContractLogicError("execution reverted: Thread does not exist")
    )

    assert contract_client.confirmed_count(THREAD, alice.address) == 0


def test_rpc_failure_is_transient(contract_client, alice):
    contract_client.contract.functions.getReadStatus.return_value.call.side_effect = (
        ConnectionError("connection refused")
    )

    with pytest.raises(LedgerUnavailable) as exc:
        contract_client.confirmed_count(THREAD, alice.address)
    assert exc.value.details["thread_id"] == THREAD


def test_static_client_is_case_insensitive():
    ledger = StaticLedgerClient({THREAD.upper().replace("0X", "0x"): 3})

    assert ledger.confirmed_count(THREAD, "0x" + "00" * 20) == 3
    assert ledger.confirmed_count("0x" + "cd" * 32, "0x" + "00" * 20) == 0


class TestSignatureVerifier:
    def _sign(self, account, text):
        signed = Account.sign_message(encode_defunct(text=text), private_key=account.key)
        return Web3.to_hex(signed.signature)

    def test_recover_returns_lowercase_signer(self, alice):
        signature = self._sign(alice, "hello")

        assert SignatureVerifier().recover("hello", signature) == alice.address.lower()

    def test_verify_accepts_any_address_case(self, alice):
        signature = self._sign(alice, "hello")

        SignatureVerifier().verify("hello", signature, alice.address.lower())
        SignatureVerifier().verify("hello", signature, alice.address)

    def test_verify_rejects_other_signer(self, alice, bob):
        signature = self._sign(bob, "hello")

        with pytest.raises(InvalidSignature) as exc:
            SignatureVerifier().verify("hello", signature, alice.address)
        assert exc.value.details["recovered"] == bob.address.lower()

    def test_verify_rejects_altered_message(self, alice):
        signature = self._sign(alice, "hello")

        with pytest.raises(InvalidSignature):
            SignatureVerifier().verify("hello!", signature, alice.address)

    @pytest.mark.parametrize("signature", ["", "0x", "0x1234", "not-hex"])
    def test_malformed_signature(self, alice, signature):
        with pytest.raises(InvalidSignature):
            SignatureVerifier().recover("hello", signature)
