"""
Data models for the rollup-probe package.
"""
from typing import Dict, Any, Optional, List, Union

from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

MAX_UINT64 = 2 ** 64 - 1


class TransactionDetails(BaseModel):
    """Unsigned description of one chain-local EIP-1559 transaction"""
    model_config = ConfigDict(frozen=True)

    to: str
    value: int = Field(0, ge=0)
    data: bytes = b""
    gas: int = Field(..., ge=0, le=MAX_UINT64)
    max_priority_fee_per_gas: int = Field(..., ge=0)
    max_fee_per_gas: int = Field(..., ge=0)

    @field_validator("to", mode="before")
    @classmethod
    def _checksum_to(cls, value: Any) -> str:
        if isinstance(value, (bytes, bytearray)):
            value = Web3.to_hex(value)
        if not isinstance(value, str) or not Web3.is_address(value):
            raise ValueError(f"'to' must be a 20-byte address, got: {value!r}")
        return Web3.to_checksum_address(value)

    @field_validator("data", mode="before")
    @classmethod
    def _hex_data(cls, value: Any) -> bytes:
        if value is None:
            return b""
        if isinstance(value, str):
            return bytes(HexBytes(value))
        return value

    def to_tx_dict(self, chain_id: int, nonce: int) -> Dict[str, Any]:
        """
        Build the dictionary eth_account signs.

        Args:
            chain_id: Chain the transaction is bound to
            nonce: Sender nonce

        Returns:
            Type 2 transaction dictionary
        """
        return {
            "type": 2,
            "chainId": chain_id,
            "nonce": nonce,
            "to": self.to,
            "value": self.value,
            "gas": self.gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "maxFeePerGas": self.max_fee_per_gas,
            "data": self.data,
            "accessList": [],
        }


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, web3_receipt: Union[Dict[str, Any], Any]) -> "TxReceipt":
        """
        Convert a Web3 receipt to our TxReceipt model

        Args:
            web3_receipt: The Web3 transaction receipt

        Returns:
            Our TxReceipt model
        """
        receipt_dict = dict(web3_receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, (bytes, bytearray)):
                receipt_dict[key] = Web3.to_hex(value)
        receipt_dict["logs"] = [dict(log) for log in receipt_dict.get("logs") or []]

        return cls.model_validate(receipt_dict)
