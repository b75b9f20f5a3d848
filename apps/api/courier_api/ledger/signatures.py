"""Wallet signature recovery for signed thread entries."""

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from courier_api.errors import InvalidSignature

logger = logging.getLogger(__name__)


class SignatureVerifier:
    """Recovers EIP-191 personal-message signers."""

    def recover(self, message: str, signature: str) -> str:
        """Return the lower-cased address that signed ``message``."""
        try:
            address = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            raise InvalidSignature(f"Malformed signature: {e}") from e
        return address.lower()

    def verify(self, message: str, signature: str, expected_address: str) -> None:
        """Raise InvalidSignature unless ``signature`` recovers to ``expected_address``."""
        recovered = self.recover(message, signature)
        if recovered != expected_address.lower():
            logger.info(
                "Signature signer mismatch",
                extra={"expected": expected_address.lower(), "recovered": recovered},
            )
            raise InvalidSignature(
                "Signature does not match sender",
                expected=expected_address.lower(),
                recovered=recovered,
            )
