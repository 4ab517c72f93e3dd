"""
NEAR Treasury Dashboard - Data Models
======================================
In-memory entities recomputed on every refresh. Nothing here is persisted.

Yocto-scale amounts are ints; human-scale amounts are Decimals.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from formatters import (
    decimal_str,
    format_near_amount,
    format_token_amount,
    format_token_balance,
    format_usd_value,
    readable_amount,
)

ZERO = Decimal(0)


@dataclass(frozen=True)
class AccountBalance:
    total: int
    available: int
    storage: int

    def to_dict(self) -> Dict[str, str]:
        return {
            "total": str(self.total),
            "available": str(self.available),
            "storage": str(self.storage),
            "totalParsed": format_near_amount(self.total),
            "availableParsed": format_near_amount(self.available),
            "storageParsed": format_near_amount(self.storage),
        }


@dataclass(frozen=True)
class StakingPoolBalance:
    """Balances held at one staking pool, in NEAR (2 decimals)."""

    pool_id: str
    staked: Decimal
    unstaked: Decimal
    available_to_withdraw: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "poolId": self.pool_id,
            "staked": decimal_str(self.staked),
            "unstaked": decimal_str(self.unstaked),
            "availableToWithdraw": decimal_str(self.available_to_withdraw),
            "total": decimal_str(self.total),
        }


@dataclass(frozen=True)
class AggregatedStaking:
    staked: Decimal = ZERO
    unstaked: Decimal = ZERO
    total: Decimal = ZERO
    available_to_withdraw: Decimal = ZERO

    def to_dict(self) -> Dict[str, str]:
        return {
            "staked": decimal_str(self.staked),
            "unstaked": decimal_str(self.unstaked),
            "total": decimal_str(self.total),
            "availableToWithdraw": decimal_str(self.available_to_withdraw),
        }


@dataclass(frozen=True)
class LockupAccount:
    contract_id: str
    state: Optional[bytes]
    vesting_locked: int
    near_balances: AccountBalance
    staked_balances: AggregatedStaking
    staking_pools: Tuple[StakingPoolBalance, ...] = ()


@dataclass(frozen=True)
class LockupReconciledBalance:
    locked: int
    available: int
    staked: int
    storage: int
    total: int
    contract_locked: int

    def to_dict(self) -> Dict[str, str]:
        out = {}
        for name in ("locked", "available", "staked", "storage", "total"):
            value = getattr(self, name)
            out[name] = str(value)
            out[f"{name}Parsed"] = format_near_amount(value)
        out["contractLocked"] = str(self.contract_locked)
        out["contractLockedParsed"] = format_near_amount(self.contract_locked)
        return out


@dataclass(frozen=True)
class VestingSummary:
    total_allocated: int
    vested: int
    unvested: int
    start: Optional[datetime]
    cliff: Optional[datetime]
    end: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAllocated": format_near_amount(self.total_allocated),
            "vested": format_near_amount(self.vested),
            "unvested": format_near_amount(self.unvested),
            "start": self.start.isoformat() if self.start else None,
            "cliff": self.cliff.isoformat() if self.cliff else None,
            "end": self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class FtLockupBalance:
    """A treasury's allocation in a fungible-token lockup contract.

    Amounts are in the token's smallest unit. Timestamps are in seconds.
    """

    contract_id: str
    token_account_id: str
    symbol: str
    icon: Optional[str]
    decimals: int
    price: Optional[Decimal]
    deposited: int
    claimed: int
    unclaimed: int
    start_timestamp: Optional[int]
    session_interval: Optional[int]
    session_num: int
    last_claim_session: int
    released_sessions: int
    usd_value: Decimal

    @property
    def locked(self) -> int:
        return max(self.deposited - self.unclaimed - self.claimed, 0)

    @property
    def fully_claimed(self) -> bool:
        return self.claimed >= self.deposited

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contractId": self.contract_id,
            "tokenAccountId": self.token_account_id,
            "symbol": self.symbol,
            "icon": self.icon,
            "decimals": self.decimals,
            "price": decimal_str(self.price) if self.price is not None else None,
            "deposited": str(self.deposited),
            "claimed": str(self.claimed),
            "unclaimed": str(self.unclaimed),
            "locked": str(self.locked),
            "lockedFormatted": format_token_balance(readable_amount(self.locked, self.decimals)),
            "unclaimedFormatted": format_token_balance(readable_amount(self.unclaimed, self.decimals)),
            "startTimestamp": self.start_timestamp,
            "sessionInterval": self.session_interval,
            "sessionNum": self.session_num,
            "lastClaimSession": self.last_claim_session,
            "releasedSessions": self.released_sessions,
            "fullyClaimed": self.fully_claimed,
            "usdValue": f"{self.usd_value:.2f}",
        }


@dataclass(frozen=True)
class IntentsToken:
    """One balance in the intents settlement contract, on one source chain."""

    token_id: str
    amount: int
    symbol: str
    icon: Optional[str]
    decimals: int
    price: Optional[Decimal]
    blockchain: Optional[str]
    blockchain_name: str

    @property
    def contract_id(self) -> str:
        # nep141:<contract> -> <contract>
        if self.token_id.startswith("nep141:"):
            return self.token_id.split(":", 1)[1]
        return self.token_id

    def to_dict(self) -> Dict[str, Any]:
        readable = readable_amount(self.amount, self.decimals)
        return {
            "token_id": self.token_id,
            "contract_id": self.contract_id,
            "amount": str(self.amount),
            "amountFormatted": (
                format_token_amount(readable, self.price) if self.price else format_token_balance(readable)
            ),
            "ft_meta": {
                "symbol": self.symbol,
                "icon": self.icon,
                "decimals": self.decimals,
                "price": decimal_str(self.price) if self.price is not None else None,
            },
            "blockchain": self.blockchain,
            "blockchainName": self.blockchain_name,
        }


@dataclass(frozen=True)
class IntentsNetwork:
    id: str
    label: str
    icon: Optional[str]
    chain_id: str
    decimals: int
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "icon": self.icon,
            "chainId": self.chain_id,
            "decimals": self.decimals,
            "amount": decimal_str(self.amount),
        }


@dataclass(frozen=True)
class AggregatedIntentsAsset:
    symbol: str
    icon: Optional[str]
    price: Optional[Decimal]
    total_amount: Decimal
    total_usd: Decimal
    networks: Tuple[IntentsNetwork, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "icon": self.icon,
            "price": decimal_str(self.price) if self.price is not None else None,
            "totalAmount": decimal_str(self.total_amount),
            "totalAmountFormatted": format_token_balance(self.total_amount),
            "totalUsd": decimal_str(self.total_usd),
            "totalUsdFormatted": format_usd_value(self.total_amount, self.price),
            "networks": [n.to_dict() for n in self.networks],
        }


@dataclass
class TreasurySnapshot:
    """Everything the dashboard shows for one treasury at one refresh."""

    dao_id: str
    generation: int
    fetched_at: datetime
    near_balances: Optional[AccountBalance] = None
    staking_pools: List[StakingPoolBalance] = field(default_factory=list)
    staked_balances: AggregatedStaking = field(default_factory=AggregatedStaking)
    lockup_contract: Optional[str] = None
    lockup_balances: Optional[LockupReconciledBalance] = None
    lockup_staking_pools: List[StakingPoolBalance] = field(default_factory=list)
    lockup_staked_balances: Optional[AggregatedStaking] = None
    lockup_vesting: Optional[VestingSummary] = None
    ft_tokens: Dict[str, Any] = field(default_factory=dict)
    ft_lockups: List[FtLockupBalance] = field(default_factory=list)
    intents_tokens: List[IntentsToken] = field(default_factory=list)
    intents_assets: List[AggregatedIntentsAsset] = field(default_factory=list)
    near_price: Optional[Decimal] = None
    total_usd: Decimal = ZERO
    failed_sections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daoId": self.dao_id,
            "generation": self.generation,
            "fetchedAt": self.fetched_at.isoformat(),
            "nearBalances": self.near_balances.to_dict() if self.near_balances else None,
            "stakingPools": [p.to_dict() for p in self.staking_pools],
            "stakedBalances": self.staked_balances.to_dict(),
            "lockupContract": self.lockup_contract,
            "lockupBalances": self.lockup_balances.to_dict() if self.lockup_balances else None,
            "lockupStakingPools": [p.to_dict() for p in self.lockup_staking_pools],
            "lockupStakedBalances": (
                self.lockup_staked_balances.to_dict() if self.lockup_staked_balances else None
            ),
            "lockupVesting": self.lockup_vesting.to_dict() if self.lockup_vesting else None,
            "ftTokens": self.ft_tokens,
            "ftLockups": {
                "partiallyClaimed": [lockup.to_dict() for lockup in self.ft_lockups if not lockup.fully_claimed],
                "fullyClaimed": [lockup.to_dict() for lockup in self.ft_lockups if lockup.fully_claimed],
            },
            "intentsTokens": [t.to_dict() for t in self.intents_tokens],
            "intentsAssets": [a.to_dict() for a in self.intents_assets],
            "nearPrice": decimal_str(self.near_price) if self.near_price is not None else None,
            "totalUsd": f"{self.total_usd:.2f}",
            "totalUsdFormatted": format_usd_value(self.total_usd, 1),
            "failedSections": list(self.failed_sections),
        }
