"""
Client library for the account ledger API
"""

from zkaccount.client.ledger_client import LedgerClient
from zkaccount.client.reconciler import BalanceReconciler
from zkaccount.client.session import WalletSession
from zkaccount.client.signer import WalletSigner

__all__ = ["LedgerClient", "BalanceReconciler", "WalletSession", "WalletSigner"]
