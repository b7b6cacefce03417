"""
Client-side balance polling for tracked accounts.

The ledger stays the source of truth; cached balances are eventually
consistent and may lag behind mutations the user just submitted.
"""

import asyncio
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from loguru import logger

from zkaccount.core.config import get_settings
from zkaccount.client.ledger_client import LedgerClient
from zkaccount.client.session import WalletSession


class BalanceReconciler:
    """
    Periodically refreshes the available balance of every account tracked by
    a session.
    """

    def __init__(self, client: LedgerClient, session: WalletSession, interval: Optional[float] = None):
        self.client = client
        self.session = session
        self.interval = interval if interval is not None else get_settings().balance_poll_interval

        self.balances: Dict[str, Decimal] = {}
        self.failures: Dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None
        self._handlers: List[Callable[[Dict[str, Decimal]], None]] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_update_handler(self, handler: Callable[[Dict[str, Decimal]], None]) -> None:
        """Called with the balance cache after every tick"""
        self._handlers.append(handler)

    def balance_of(self, salt: str) -> Optional[Decimal]:
        return self.balances.get(salt)

    async def refresh(self) -> Dict[str, Decimal]:
        """
        Run one reconciliation tick.

        Tracked accounts are snapshotted first, so tracking changes made
        while the tick runs apply from the next one. A failed read keeps the
        previously cached value.
        """
        if not self.session.active:
            return dict(self.balances)

        tracked = self.session.tracked()
        email_hash = self.session.email_hash
        salts = list(tracked)

        results = await asyncio.gather(
            *(self.client.get_balance(email_hash, salt) for salt in salts),
            return_exceptions=True
        )

        for salt, result in zip(salts, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                self.failures[salt] = type(result).__name__
                logger.warning(f"Balance refresh failed for {tracked[salt]}: {result}")
                continue
            self.failures.pop(salt, None)
            self.balances[salt] = result

        for salt in list(self.balances):
            if salt not in tracked:
                self.balances.pop(salt)

        snapshot = dict(self.balances)
        for handler in self._handlers:
            try:
                handler(snapshot)
            except Exception as e:
                logger.error(f"Error in balance update handler: {e}")
        return snapshot

    async def _run(self) -> None:
        while self.session.active:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Balance reconciliation tick failed: {e}")
            await asyncio.sleep(self.interval)
        logger.info("Balance reconciliation ended with the session")

    def start(self) -> asyncio.Task:
        """Start polling on the running event loop"""
        if not self.running:
            self._task = asyncio.create_task(self._run())
            logger.info(f"Balance reconciliation started ({self.interval}s interval)")
        return self._task

    async def stop(self) -> None:
        """Cancel polling and wait for the task to finish"""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Balance reconciliation stopped")
