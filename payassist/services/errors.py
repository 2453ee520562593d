"""
Error codes and plain-language user messages.

Codes are logged and passed between components; only the messages are
meant to be shown to a user.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # Authentication
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Billers
    BILLER_NOT_FOUND = "BILLER_NOT_FOUND"
    INVALID_BILLER_CODE = "INVALID_BILLER_CODE"
    INVALID_ACCOUNT_NUMBER = "INVALID_ACCOUNT_NUMBER"
    INVALID_CRN = "INVALID_CRN"
    BILLER_VALIDATION_FAILED = "BILLER_VALIDATION_FAILED"

    # Accounts / transfers
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    INSTRUMENT_NOT_FOUND = "INSTRUMENT_NOT_FOUND"
    INSTRUMENT_MISMATCH = "INSTRUMENT_MISMATCH"
    INVALID_ACCOUNT_TYPE = "INVALID_ACCOUNT_TYPE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    SAME_ACCOUNT = "SAME_ACCOUNT"

    # Payments
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    PAYMENT_LIMIT_EXCEEDED = "PAYMENT_LIMIT_EXCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    PAYMENT_ALREADY_FINALIZED = "PAYMENT_ALREADY_FINALIZED"
    DUPLICATE_PAYMENT = "DUPLICATE_PAYMENT"

    # Workflow
    NO_ACTIVE_TRANSFER = "NO_ACTIVE_TRANSFER"
    INVALID_SELECTION = "INVALID_SELECTION"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    WORKFLOW_CLOSED = "WORKFLOW_CLOSED"

    # Tool boundary
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"

    # System
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.INVALID_TOKEN: "Your session has expired. Please log in again.",
    ErrorCode.EXPIRED_TOKEN: "Your session has expired. Please log in again.",
    ErrorCode.USER_NOT_FOUND: "Unable to find your account. Please contact support.",
    ErrorCode.BILLER_NOT_FOUND: "The requested biller could not be found.",
    ErrorCode.INVALID_BILLER_CODE: "The biller code is invalid. Please check and try again.",
    ErrorCode.INVALID_ACCOUNT_NUMBER: "The account number is invalid.",
    ErrorCode.INVALID_CRN: "The customer reference number (CRN) is invalid.",
    ErrorCode.BILLER_VALIDATION_FAILED: "Unable to validate the biller details.",
    ErrorCode.ACCOUNT_NOT_FOUND: "Source account not found.",
    ErrorCode.INSTRUMENT_NOT_FOUND: "That payee's payment details could not be found.",
    ErrorCode.INSTRUMENT_MISMATCH: "That payee can't receive this kind of payment.",
    ErrorCode.INVALID_ACCOUNT_TYPE: "That account can't be used for this kind of payment.",
    ErrorCode.INVALID_AMOUNT: "The amount must be greater than zero.",
    ErrorCode.SAME_ACCOUNT: "The source and destination accounts must be different.",
    ErrorCode.INSUFFICIENT_FUNDS: "Insufficient funds for this payment.",
    ErrorCode.PAYMENT_LIMIT_EXCEEDED: "This payment exceeds your daily limit.",
    ErrorCode.PAYMENT_FAILED: "The payment could not be processed. Please try again.",
    ErrorCode.PAYMENT_NOT_FOUND: "Payment not found.",
    ErrorCode.PAYMENT_ALREADY_FINALIZED: "This payment has already been finalised.",
    ErrorCode.DUPLICATE_PAYMENT: "A similar payment was recently made. Please confirm this is not a duplicate.",
    ErrorCode.NO_ACTIVE_TRANSFER: "There is no transfer in progress. Please tell me what you'd like to pay.",
    ErrorCode.INVALID_SELECTION: "That option isn't in the list. Please choose one of the numbered options.",
    ErrorCode.CONFIRMATION_REQUIRED: "I need your explicit confirmation before moving any money.",
    ErrorCode.WORKFLOW_CLOSED: "That transfer has already finished. Please start a new request.",
    ErrorCode.UNKNOWN_TOOL: "That operation isn't available.",
    ErrorCode.VALIDATION_ERROR: "Some details were missing or invalid.",
    ErrorCode.TOOL_EXECUTION_FAILED: "Something went wrong while processing that request. Please try again.",
    ErrorCode.SERVICE_UNAVAILABLE: "The payment service is temporarily unavailable.",
    ErrorCode.TIMEOUT: "The request timed out. Please try again.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Please try again.",
}


def user_message(code: ErrorCode) -> str:
    return USER_MESSAGES.get(code, USER_MESSAGES[ErrorCode.UNKNOWN_ERROR])


class PaymentsError(Exception):
    """
    Raised inside services/workflows when an operation cannot proceed.
    Converted to structured error results before crossing the tool boundary.
    """

    def __init__(self, code: ErrorCode, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message or user_message(code)
        self.details = details or {}
        super().__init__(self.message)

    def to_tool_error(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}
