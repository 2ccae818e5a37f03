#!/usr/bin/env python3
"""
Example of bridging tokens between the two rollups with rollup-probe.
"""
import os

from rollup_probe import RollupProbeError, configure_logging, load_config, poll_legs
from rollup_probe.accounts import RollupAccount
from rollup_probe.config import CHAIN_NAME_ROLLUP_A, CHAIN_NAME_ROLLUP_B
from rollup_probe.helpers import approve_tokens, send_bridge_tx, send_mint_tx


def main():
    """
    Demonstrate a bridge transfer.

    This example shows how to:
    1. Load the configuration from CONFIG_PATH
    2. Mint and approve tokens on rollup A
    3. Submit the send/receiveTokens pair as one bundle
    4. Confirm both legs
    """
    if not os.environ.get("CONFIG_PATH"):
        print("ERROR: CONFIG_PATH environment variable is required")
        return

    configure_logging()
    config = load_config()
    rollup_a, rollup_b = config.rollups()
    sender = RollupAccount(config.private_key(CHAIN_NAME_ROLLUP_A), rollup_a)
    receiver = RollupAccount(config.private_key(CHAIN_NAME_ROLLUP_B), rollup_b)

    token = config.contract("bridgeabletoken")
    bridge = config.contract("bridge")
    amount = 100

    try:
        send_mint_tx(sender, amount, token.checksum_address, token.parsed_abi)
        approve_tokens(sender, bridge.checksum_address, token.checksum_address, token.parsed_abi)

        signed_a, signed_b = send_bridge_tx(config, sender, receiver, amount)
        outcomes = poll_legs([(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)])

        for outcome in outcomes:
            print(f"{outcome.chain.name}: {outcome.status.value} ({outcome.tx_hash})")
        balance = receiver.get_token_balance(token.checksum_address, token.parsed_abi)
        print(f"Receiver token balance on {rollup_b.name}: {balance}")

    except RollupProbeError as e:
        print(f"Error bridging tokens: {e}")


if __name__ == "__main__":
    main()
