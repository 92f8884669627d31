"""
Business codes returned in the ``code`` field of every API envelope.

Order/payment domain codes live in the 2xxxx range; provider failures use
``shared.codes.payment_codes.PaymentCode`` (6xxxx).
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Order / payment errors (2xxxx)
    BUSINESS_ERROR = 20000
    ORDER_NOT_FOUND = 20001
    PAYMENT_NOT_FOUND = 20002
    NOT_FOUND = 20006
    CONFLICT = 20007
    ORDER_NOT_PAYABLE = 20008
    PAYMENT_ALREADY_EXISTS = 20009
    CONCURRENT_UPDATE = 20010

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    CHECKOUT_COMPENSATION_FAILED = 40004


__all__ = ["BusinessCode"]
