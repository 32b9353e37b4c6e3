#!/usr/bin/env python3
"""
Relayer error taxonomy.

Validation / NotFound / InvalidState are rejected before any state change.
BuildFailure / SubmissionFailure force the order to FAILED inside the
fill executor and never escape it.
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    CONTRACT_ERROR = "CONTRACT_ERROR"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"
    INVALID_TOKEN_PAIR = "INVALID_TOKEN_PAIR"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    EXTENSION_CREATION_FAILED = "EXTENSION_CREATION_FAILED"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"
    FLASH_LOAN_FAILED = "FLASH_LOAN_FAILED"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class RelayerError(Exception):
    """Base class for every error the relayer raises on purpose."""

    code: ErrorCode = ErrorCode.CONTRACT_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class OrderValidationError(RelayerError):
    code = ErrorCode.ORDER_CREATION_FAILED


class OrderNotFound(RelayerError):
    code = ErrorCode.ORDER_NOT_FOUND

    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidStateError(RelayerError):
    code = ErrorCode.INVALID_STATE

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class InvalidTransition(RelayerError):
    """Store-level compare-and-swap rejection."""

    code = ErrorCode.INVALID_STATE

    def __init__(self, order_id: str, from_status: str, to_status: str,
                 current_status: Optional[str]):
        super().__init__(
            f"Invalid transition {from_status} -> {to_status} for {order_id} "
            f"(current status: {current_status})"
        )
        self.order_id = order_id
        self.current_status = current_status


class DuplicateOrderError(RelayerError):
    code = ErrorCode.ORDER_CREATION_FAILED


class BuildFailure(RelayerError):
    code = ErrorCode.EXTENSION_CREATION_FAILED


class SubmissionFailure(RelayerError):
    code = ErrorCode.TRANSACTION_FAILED

    def __init__(self, message: str, code: Optional[ErrorCode] = None,
                 tx_hash: Optional[str] = None):
        super().__init__(message, code)
        self.tx_hash = tx_hash


class ChainConfigurationError(SubmissionFailure):
    code = ErrorCode.CONFIGURATION_ERROR


def describe_chain_error(error: BaseException, operation: str) -> str:
    """
    Map a raw chain / RPC exception to a human readable failure message.

    Relayer errors already carry a readable message and pass through.
    """
    if isinstance(error, RelayerError):
        return error.message

    text = str(error) or error.__class__.__name__
    lowered = text.lower()

    if "insufficient funds" in lowered or ("insufficient" in lowered and "balance" in lowered):
        return f"Insufficient funds for {operation}: {text}"
    if "nonce" in lowered:
        return f"Nonce conflict during {operation}: {text}"
    if "allowance" in lowered:
        return f"Token allowance is insufficient for {operation}: {text}"
    if "revert" in lowered or "execution reverted" in lowered:
        return f"Smart contract call failed during {operation}: {text}"
    if "timeout" in lowered or "timed out" in lowered or "not in the chain after" in lowered:
        return f"Timed out waiting for confirmation during {operation}: {text}"
    if "connection" in lowered or "network" in lowered:
        return f"Network error during {operation}: {text}"

    return f"{operation} failed: {text}"
