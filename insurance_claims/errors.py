"""Error kinds raised by the coverage and claims core.

Computational errors (amounts, rules, currencies) are raised to the caller and
block claim submission. Import-time duplicates are collected per row by the
code registry instead of being raised.
"""


class ClaimsError(Exception):
    """Base class for every error this package raises on purpose."""

    code = "CLAIMS_ERROR"
    retryable = False


class InvalidAmount(ClaimsError):
    code = "INVALID_AMOUNT"


class InvalidCoverageRule(ClaimsError):
    code = "INVALID_COVERAGE_RULE"


class UnknownCurrency(ClaimsError):
    code = "UNKNOWN_CURRENCY"

    def __init__(self, currency):
        self.currency = currency
        super().__init__(f"Unknown currency code: {currency!r}")


class NotFound(ClaimsError):
    code = "NOT_FOUND"


class CodeNotFound(NotFound):
    code = "CODE_NOT_FOUND"


class CoverageRuleNotFound(NotFound):
    code = "COVERAGE_RULE_NOT_FOUND"


class ClaimNotFound(NotFound):
    code = "CLAIM_NOT_FOUND"


class InvalidTransition(ClaimsError):
    code = "INVALID_TRANSITION"

    def __init__(self, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Claim cannot move from {from_status} to {to_status}")


class DuplicateCode(ClaimsError):
    code = "DUPLICATE_CODE"


class DuplicateCoverageRule(ClaimsError):
    code = "DUPLICATE_COVERAGE_RULE"


class ConcurrentUpdate(ClaimsError):
    """The claim changed between read and write; re-read and try again."""

    code = "CONCURRENT_UPDATE"
    retryable = True


class ClaimNumberExhausted(ClaimsError):
    code = "CLAIM_NUMBER_EXHAUSTED"
    retryable = True


class ClaimMismatch(ClaimsError):
    """A correction that does not describe the same claim as the one it replaces."""

    code = "CLAIM_MISMATCH"
