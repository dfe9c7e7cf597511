"""
Error kinds raised by the Bubblegum pipeline.

Every failure is raised as a BubblegumError subclass and converted into a
Failure result by the orchestrators in bubblegum.py.
"""


class BubblegumError(Exception):
    kind = "Error"
    prefix = "Error"

    def __init__(self, detail: str):
        self.detail = str(detail)
        super().__init__(f"{self.prefix}: {self.detail}")

    @property
    def message(self) -> str:
        return str(self)


class InvalidAddress(BubblegumError):
    kind = "InvalidAddress"
    prefix = "Invalid public key"


class InvalidKey(BubblegumError):
    kind = "InvalidKey"
    prefix = "Invalid keypair"


class InvalidEncoding(BubblegumError):
    kind = "InvalidEncoding"
    prefix = "Invalid bs58 encoding"


class NetworkError(BubblegumError):
    kind = "NetworkError"
    prefix = "Solana client error"


class SigningError(BubblegumError):
    kind = "SigningError"
    prefix = "Signing error"


class TransactionError(BubblegumError):
    kind = "TransactionError"
    prefix = "Transaction error"


class SerializationError(BubblegumError):
    kind = "SerializationError"
    prefix = "Serialization error"


# Kinds caused by caller input rather than the remote node.
INPUT_ERROR_KINDS = frozenset({InvalidAddress.kind, InvalidKey.kind, InvalidEncoding.kind})
