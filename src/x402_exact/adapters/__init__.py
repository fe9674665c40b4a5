from .evm import (
    EVMSettler,
    EVMVerificationResult,
    LocalAccountSigner,
    TypedDataSigner,
    build_authorization,
    verify_exact_payment,
)

__all__ = [
    "EVMSettler",
    "EVMVerificationResult",
    "LocalAccountSigner",
    "TypedDataSigner",
    "build_authorization",
    "verify_exact_payment",
]
