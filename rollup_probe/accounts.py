"""
Funded accounts on a rollup: key material plus the chain queries a sender needs.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from eth_account import Account as EthAccount
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import Web3Exception

from .exceptions import CancellationError, SigningError, TransactionError
from .rollup import Rollup

logger = logging.getLogger(__name__)


def make_web3(rollup: Rollup, timeout: int = 30) -> Web3:
    """Create a Web3 instance for a rollup's RPC endpoint."""
    return Web3(Web3.HTTPProvider(rollup.rpc_url, request_kwargs={"timeout": timeout}))


class RollupAccount:
    """
    An externally owned account bound to one rollup.

    The account may be created without a private key (address only); such an
    account can be queried but any attempt to sign with it raises SigningError.
    """

    def __init__(
        self,
        private_key: Optional[str],
        rollup: Rollup,
        w3: Optional[Web3] = None,
        address: Optional[str] = None
    ):
        """
        Initialize the account

        Args:
            private_key: Hex private key, with or without 0x prefix
            rollup: Chain the account lives on
            w3: Optional Web3 instance (defaults to an HTTP provider for the rollup)
            address: Address to use when no private key is given

        Raises:
            SigningError: If the private key is invalid
            ValueError: If neither private_key nor address is provided
        """
        self.rollup = rollup
        self.w3 = w3 or make_web3(rollup)
        self.local_account: Optional[LocalAccount] = None

        if private_key:
            try:
                self.local_account = EthAccount.from_key(private_key)
            except (ValueError, TypeError) as e:
                raise SigningError(f"invalid private key: {e}") from e
            self.address = self.local_account.address
        elif address:
            self.address = Web3.to_checksum_address(address)
        else:
            raise ValueError("Either private_key or address must be provided")

    @classmethod
    def create(cls, rollup: Rollup, w3: Optional[Web3] = None) -> "RollupAccount":
        """
        Create an account with a freshly generated key.

        Used to spawn throwaway senders that are funded with distribute_eth.
        """
        acct = EthAccount.create()
        return cls(acct.key.hex(), rollup, w3=w3)

    @property
    def has_key(self) -> bool:
        return self.local_account is not None

    def sign_transaction(self, tx_dict: Dict[str, Any]) -> Any:
        """
        Sign a transaction dictionary with the account key

        Raises:
            SigningError: If the account has no key or signing fails
        """
        if self.local_account is None:
            raise SigningError(f"private key is nil for account {self.address} on {self.rollup.name}")
        try:
            return self.local_account.sign_transaction(tx_dict)
        except (ValueError, TypeError, KeyError) as e:
            logger.error(f"failed to sign transaction on {self.rollup.name}: {e}")
            raise SigningError(f"failed to sign transaction: {e}") from e

    def get_nonce(self, cancel_event: Optional[threading.Event] = None) -> int:
        """
        Get the next pending nonce for this account

        Args:
            cancel_event: Optional event that aborts the query when set

        Returns:
            Pending nonce

        Raises:
            CancellationError: If cancel_event is already set
            TransactionError: If the query fails
        """
        if cancel_event is not None and cancel_event.is_set():
            raise CancellationError(f"cancelled before fetching nonce for {self.address}", chain=self.rollup.name)
        try:
            nonce = self.w3.eth.get_transaction_count(self.address, "pending")
        except (Web3Exception, OSError, ValueError) as e:
            raise TransactionError(f"failed to get nonce: {e}", chain=self.rollup.name) from e
        logger.info(f"Nonce loaded successfully for account: {self.address} with nonce: {nonce}")
        return nonce

    def get_balance(self) -> int:
        """
        Get the native balance of the account in wei

        Raises:
            TransactionError: If the query fails
        """
        try:
            return self.w3.eth.get_balance(self.address)
        except (Web3Exception, OSError, ValueError) as e:
            raise TransactionError(f"failed to get balance: {e}", chain=self.rollup.name) from e

    def get_token_balance(self, token_address: str, token_abi: List[Dict[str, Any]]) -> int:
        """
        Get the ERC-20 balance of the account

        Args:
            token_address: Token contract address
            token_abi: Token contract ABI (must contain balanceOf)

        Returns:
            Token balance

        Raises:
            TransactionError: If the call fails
        """
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=token_abi)
        try:
            balance = contract.functions.balanceOf(self.address).call()
        except (Web3Exception, OSError, ValueError) as e:
            logger.error(f"failed to get tokens balance on {self.rollup.name} for account: {self.address}: {e}")
            raise TransactionError(f"failed to get tokens balance: {e}", chain=self.rollup.name) from e
        logger.info(f"Tokens balance loaded successfully on {self.rollup.name} for account: {self.address} with balance: {balance}")
        return balance

    def __repr__(self) -> str:
        return f"RollupAccount(address={self.address!r}, rollup={self.rollup.name!r})"
