from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional


@dataclass(frozen=True)
class User:
    telegram_id: int
    username: Optional[str] = None


@dataclass(frozen=True)
class TrackedWallet:
    """One record per (chain_ticker, address); exists only while it has subscribers."""
    chain_ticker: str           # "ETH" | "BSC" | ... | "SOL"
    address: str                # canonical: checksummed (EVM) or base58 as given (SOL)
    subscribers: FrozenSet[int] = field(default_factory=frozenset)
    alias: Optional[str] = None
    stream_id: Optional[str] = None     # None until the provider stream exists

    @property
    def pending_stream(self) -> bool:
        return self.stream_id is None


@dataclass(frozen=True)
class SubscribeResult:
    created: bool               # first subscriber, record just created
    already_subscribed: bool
    wallet: TrackedWallet


@dataclass(frozen=True)
class UnsubscribeResult:
    removed: bool               # False: user was not tracking this wallet
    deleted: bool               # last subscriber left, record gone
    wallet: Optional[TrackedWallet] = None
    stream_id: Optional[str] = None     # orphaned stream to release when deleted


class AttachResult(Enum):
    ATTACHED = "attached"
    ALREADY_SET = "already_set"     # another provisioning won the race
    MISSING = "missing"             # record deleted before the stream was ready


@dataclass(frozen=True)
class Alert:
    """One formatted message for one tracked wallet, fanned out to its subscribers."""
    chain_ticker: str
    address: str
    tx_hash: str
    incoming: bool
    message: str


@dataclass
class DispatchOutcome:
    status: str                 # "probe" | "rejected" | "ignored" | "dispatched"
    processed: int = 0          # transactions in the event
    alerts: int = 0
    deliveries: int = 0
    failures: int = 0
    reason: str = ""
