# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import operations


class VerifierOperationsLogEntry(operations.OperationsLogEntry):
    """Container for verifier operations specific logging."""

    class Operation(Enum):
        verification = "VERIFICATION"
        presentation = "PRESENTATION"
        payment = "PAYMENT"
        trust = "TRUST"

    class Step(Enum):
        verification_request = "REQUEST"
        verification_evaluation = "EVALUATION"
        verification_response = "RESPONSE"
        trust_change = "TRUST_CHANGE"
        payment_gate = "KYC_GATE"

    operation: Operation
    step: Step

    holder_did: str | None = None
    issuer_did: str | None = None
