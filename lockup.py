"""
NEAR Treasury Dashboard - Lockup Contracts
===========================================
Lockup account naming and decoding of the lockup contract's Borsh state.

A treasury's lockup lives at ``sha256(owner_id)[:40] + ".lockup.near"``:
the SHA-256 digest of the UTF-8 account id, hex encoded, first 40 chars.
This must stay byte-for-byte stable to find lockups that already exist.
"""

import hashlib
import struct
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from config import LOCKUP_SUFFIX
from models import VestingSummary


def derive_lockup_account_id(account_id: str) -> str:
    digest = hashlib.sha256(account_id.encode("utf-8")).hexdigest()
    return f"{digest[:40]}{LOCKUP_SUFFIX}"


class _BorshReader:
    """Sequential little-endian reader over the raw contract state."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise ValueError(f"lockup state truncated at byte {self.offset} (need {size})")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def u128(self) -> int:
        return int.from_bytes(self._take(16), "little")

    def string(self) -> str:
        return self._take(self.u32()).decode("utf-8")

    def vec_u8(self) -> bytes:
        return self._take(self.u32())

    def option(self, reader: Callable[[], Any]) -> Any:
        return reader() if self.u8() == 1 else None


def _transfers_information(r: _BorshReader) -> Dict[str, Any]:
    variant = r.u8()
    if variant == 0:
        return {"type": "TransfersEnabled", "transfers_timestamp": r.u64()}
    if variant == 1:
        return {"type": "TransfersDisabled", "transfer_poll_account_id": r.string()}
    raise ValueError(f"Invalid TransfersInformation variant {variant}")


def _vesting_information(r: _BorshReader) -> Dict[str, Any]:
    variant = r.u8()
    if variant == 0:
        return {"type": "None"}
    if variant == 1:
        return {"type": "VestingHash", "hash": r.vec_u8()}
    if variant == 2:
        return {
            "type": "VestingSchedule",
            "schedule": {
                "start_timestamp": r.u64(),
                "cliff_timestamp": r.u64(),
                "end_timestamp": r.u64(),
            },
        }
    if variant == 3:
        return {"type": "Terminating", "unvested_amount": r.u128(), "status": r.u8()}
    raise ValueError(f"Invalid VestingInformation variant {variant}")


def deserialize_lockup_contract(data: bytes) -> Dict[str, Any]:
    """Decode the lockup contract's state value. Raises ValueError on malformed input."""
    r = _BorshReader(bytes(data))
    owner_account_id = r.string()
    lockup_information = {
        "lockup_amount": r.u128(),
        "termination_withdrawn_tokens": r.u128(),
        "lockup_duration": r.u64(),
        "release_duration": r.option(r.u64),
        "lockup_timestamp": r.option(r.u64),
        "transfers_information": _transfers_information(r),
    }
    vesting_information = _vesting_information(r)
    whitelist = r.string()
    staking_information = r.option(lambda: {
        "staking_pool_account_id": r.string(),
        "status": "Idle" if r.u8() == 0 else "Busy",
        "deposit_amount": r.u128(),
    })
    foundation_account_id = r.option(r.string)
    return {
        "owner_account_id": owner_account_id,
        "lockup_information": lockup_information,
        "vesting_information": vesting_information,
        "staking_pool_whitelist_account_id": whitelist,
        "staking_information": staking_information,
        "foundation_account_id": foundation_account_id,
    }


def _from_nanos(nanos: Optional[int]) -> Optional[datetime]:
    if nanos is None:
        return None
    return datetime.fromtimestamp(nanos / 1_000_000_000, tz=timezone.utc)


def summarize_vesting(state: Dict[str, Any], contract_locked: int) -> VestingSummary:
    """Allocation, vested/unvested split and schedule dates of a decoded lockup."""
    info = state["lockup_information"]
    total_allocated = info["lockup_amount"]

    start = info.get("lockup_timestamp")
    if start is None:
        start = (info.get("transfers_information") or {}).get("transfers_timestamp")
    end = (start or 0) + (info.get("release_duration") or 0)
    cliff = None

    vesting = state.get("vesting_information") or {}
    schedule = vesting.get("schedule")
    if schedule:
        start = schedule["start_timestamp"]
        cliff = schedule["cliff_timestamp"]
        end = schedule["end_timestamp"]

    return VestingSummary(
        total_allocated=total_allocated,
        vested=total_allocated - contract_locked,
        unvested=contract_locked,
        start=_from_nanos(start),
        cliff=_from_nanos(cliff),
        end=_from_nanos(end),
    )
