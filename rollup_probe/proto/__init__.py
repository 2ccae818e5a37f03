"""
Protocol buffer definitions for the cross-tx coordination envelope.

This module provides access to the message classes built from xt.proto.
"""
from .xt_pb2 import (
    Message,
    XTRequest,
    TransactionRequest,
)

__all__ = [
    'Message',
    'XTRequest',
    'TransactionRequest',
]
