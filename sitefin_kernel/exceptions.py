"""
Typed Exception Hierarchy for the sitefin consistency engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API layers, dashboards, batch sweeps) must be able to react to a
failure without parsing message strings.  Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA as instance attributes (not just a message string)

Example:
    try:
        ledger.collect(invoice_id, collected_on, PaymentMethod.TRANSFER)
    except InvoiceNotFoundError as e:
        api_response(code=e.code, invoice_id=e.invoice_id)
    except InvalidInvoiceTransitionError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SitefinError (base)
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- InvalidInvoiceTransitionError
    |   +-- InvoiceAmountMismatchError
    |
    +-- PhaseError
    |   +-- InvalidPhaseNumberError
    |
    +-- QuoteError
    |   +-- QuoteNotConvertibleError
    |
    +-- StoreError
    |   +-- StoreWriteError
    |
    +-- ConfigError
        +-- InvalidRulesError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category  | Code                        | When Raised
----------|-----------------------------|------------------------------------------
Invoice   | INVOICE_NOT_FOUND           | Invoice ID doesn't exist
          | INVALID_INVOICE_TRANSITION  | e.g. collecting a draft or cancelled invoice
          | INVOICE_AMOUNT_MISMATCH     | total != subtotal + tax at creation
----------|-----------------------------|------------------------------------------
Phase     | INVALID_PHASE_NUMBER        | Phase number < 1
----------|-----------------------------|------------------------------------------
Quote     | QUOTE_NOT_CONVERTIBLE       | Quote not approved / already converted / no plan
----------|-----------------------------|------------------------------------------
Store     | STORE_WRITE_FAILED          | Store.set() reported failure
----------|-----------------------------|------------------------------------------
Config    | INVALID_RULES               | FinanceRules value out of range

Absence that is part of an operation's normal contract is NOT an exception:
``AlertEngine.resolve`` returns None for an unknown alert and
``PhaseGate.unblock`` returns False for a phase that is not blocked.
"""


class SitefinError(Exception):
    """
    Base exception for all sitefin errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SITEFIN_ERROR"


# Invoice-related exceptions


class InvoiceError(SitefinError):
    """Base exception for invoice lifecycle errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvalidInvoiceTransitionError(InvoiceError):
    """The requested lifecycle transition is not allowed from the current status."""

    code: str = "INVALID_INVOICE_TRANSITION"

    def __init__(self, invoice_id: str, current_status: str, target_status: str):
        self.invoice_id = invoice_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Invoice {invoice_id} cannot move from {current_status} "
            f"to {target_status}"
        )


class InvoiceAmountMismatchError(InvoiceError):
    """Invoice total does not equal subtotal plus tax."""

    code: str = "INVOICE_AMOUNT_MISMATCH"

    def __init__(self, subtotal: str, tax: str, total: str):
        self.subtotal = subtotal
        self.tax = tax
        self.total = total
        super().__init__(
            f"Invoice total {total} does not equal subtotal {subtotal} "
            f"plus tax {tax}"
        )


# Phase-related exceptions


class PhaseError(SitefinError):
    """Base exception for phase gating errors."""

    code: str = "PHASE_ERROR"


class InvalidPhaseNumberError(PhaseError):
    """Phase numbers start at 1."""

    code: str = "INVALID_PHASE_NUMBER"

    def __init__(self, phase_number: int):
        self.phase_number = phase_number
        super().__init__(f"Invalid phase number: {phase_number} (must be >= 1)")


# Quote-related exceptions


class QuoteError(SitefinError):
    """Base exception for quote conversion errors."""

    code: str = "QUOTE_ERROR"


class QuoteNotConvertibleError(QuoteError):
    """Quote cannot be converted into a project."""

    code: str = "QUOTE_NOT_CONVERTIBLE"

    def __init__(self, quote_id: str, reason: str):
        self.quote_id = quote_id
        self.reason = reason
        super().__init__(f"Quote {quote_id} cannot be converted: {reason}")


# Store-related exceptions


class StoreError(SitefinError):
    """Base exception for persistence errors."""

    code: str = "STORE_ERROR"


class StoreWriteError(StoreError):
    """The Store refused to persist a collection."""

    code: str = "STORE_WRITE_FAILED"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Store failed to persist collection: {key}")


# Configuration exceptions


class ConfigError(SitefinError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidRulesError(ConfigError):
    """A finance rule value is missing or out of range."""

    code: str = "INVALID_RULES"

    def __init__(self, field_name: str, value: object, expectation: str):
        self.field_name = field_name
        self.value = value
        self.expectation = expectation
        super().__init__(
            f"Invalid finance rule {field_name}={value!r}: {expectation}"
        )
