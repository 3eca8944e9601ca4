"""Wallet providers: where signing identities come from."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from lotto_sync.blockchain.client import USER_REJECTED_CODE, rpc_error_code
from lotto_sync.blockchain.interfaces import WalletProvider
from lotto_sync.lottery.errors import NoWalletError, UserRejectedError
from lotto_sync.utils.common import same_account
from lotto_sync.utils.logger import get_logger

logger = get_logger(__name__)

METHOD_NOT_FOUND_CODE = -32601


class LocalKeyWallet(WalletProvider):
    """Accounts held as private keys in the client's configuration."""

    def __init__(self, private_keys: Sequence[str]) -> None:
        self._accounts: List[LocalAccount] = [Account.from_key(key) for key in private_keys]
        if self._accounts:
            logger.info("Local wallet loaded with %d account(s)", len(self._accounts))

    async def request_accounts(self) -> List[str]:
        if not self._accounts:
            raise UserRejectedError("Wallet has no accounts to authorize")
        return [acct.address for acct in self._accounts]

    def signer_for(self, account: str) -> Optional[LocalAccount]:
        for acct in self._accounts:
            if same_account(acct.address, account):
                return acct
        return None


class RpcWallet(WalletProvider):
    """Accounts managed by the node (or a signer proxy) behind the RPC endpoint."""

    def __init__(self, w3: Web3) -> None:
        self._w3 = w3

    async def request_accounts(self) -> List[str]:
        try:
            response = await asyncio.to_thread(self._w3.provider.make_request, "eth_requestAccounts", [])
        except Exception as exc:
            code = rpc_error_code(exc)
            if code == USER_REJECTED_CODE:
                raise UserRejectedError("User rejected the account request") from exc
            if code == METHOD_NOT_FOUND_CODE:
                return await self._plain_accounts()
            raise NoWalletError(f"Wallet provider unavailable: {exc}") from exc

        return await self._accounts_from_response(response)

    async def _accounts_from_response(self, response: Dict[str, Any]) -> List[str]:
        error = response.get("error") if isinstance(response, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            if code == USER_REJECTED_CODE:
                raise UserRejectedError("User rejected the account request")
            if code == METHOD_NOT_FOUND_CODE:
                return await self._plain_accounts()
            raise NoWalletError(f"Wallet provider error: {error}")
        return list(response.get("result") or [])

    async def _plain_accounts(self) -> List[str]:
        logger.debug("eth_requestAccounts unsupported; falling back to eth_accounts")
        return list(await asyncio.to_thread(lambda: self._w3.eth.accounts))


def build_wallet_provider(config: Dict[str, Any], w3: Optional[Web3] = None) -> Optional[WalletProvider]:
    """Return the configured wallet, or None when no wallet capability is present."""
    wallet_cfg = config.get("wallet", {})
    keys = wallet_cfg.get("private_keys") or []
    if isinstance(keys, str):
        keys = [k.strip() for k in keys.split(",") if k.strip()]
    if wallet_cfg.get("private_key"):
        keys = [wallet_cfg["private_key"], *keys]

    if keys:
        return LocalKeyWallet(keys)
    if wallet_cfg.get("mode") == "rpc" and w3 is not None:
        return RpcWallet(w3)
    logger.warning("No wallet configured")
    return None
