# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import operations


class IssuerOperationsLogEntry(operations.OperationsLogEntry):
    """Container for issuer operations specific logging."""

    class Operation(Enum):
        issuance = "ISSUANCE"
        token = "TOKEN"
        credential = "CREDENTIAL"
        revocation = "REVOCATION"

    class Step(Enum):
        issuance_preparation = "PREPARATION"
        issuance_delivery = "DELIVERY"
        token_exchange = "TOKEN_EXCHANGE"
        proof_validation = "PROOF_VALIDATION"
        status_change = "STATUS_CHANGE"
        liveness_check = "LIVENESS_CHECK"

    operation: Operation
    step: Step

    holder_did: str | None = None
