"""
Storage cost and funding estimation.

All arithmetic is integer: a rounding error toward zero here under-funds the
registration transaction and the network rejects it.
"""

import logging
from typing import Iterable, Optional

from .models import CostEstimate, NetworkState
from .types import FundingInsufficientError, InputValidationError, UploadState
from .utils import ceil_div

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


class CostEstimator:
    """Converts byte sizes and retention into settlement and native amounts"""

    def __init__(self,
                 storage_rate: int = 1,
                 write_rate: int = 0,
                 price_unit_bytes: int = 1,
                 exchange_rate_numerator: int = 2,
                 exchange_rate_denominator: int = 1,
                 buffer_bps: int = 500,
                 flat_buffer: int = 0):
        if price_unit_bytes < 1 or exchange_rate_denominator < 1:
            raise InputValidationError("Unit size and exchange denominator must be positive")
        if min(storage_rate, write_rate, exchange_rate_numerator, buffer_bps, flat_buffer) < 0:
            raise InputValidationError("Rates and buffers must be non-negative")
        self.storage_rate = storage_rate
        self.write_rate = write_rate
        self.price_unit_bytes = price_unit_bytes
        self.exchange_rate_numerator = exchange_rate_numerator
        self.exchange_rate_denominator = exchange_rate_denominator
        self.buffer_bps = buffer_bps
        self.flat_buffer = flat_buffer

    @classmethod
    def from_settings(cls, settings) -> "CostEstimator":
        return cls(
            storage_rate=settings.storage_rate,
            write_rate=settings.write_rate,
            price_unit_bytes=settings.price_unit_bytes,
            exchange_rate_numerator=settings.exchange_rate_numerator,
            exchange_rate_denominator=settings.exchange_rate_denominator,
            buffer_bps=settings.funding_buffer_bps,
            flat_buffer=settings.funding_flat_buffer,
        )

    def units(self, size: int) -> int:
        return ceil_div(size, self.price_unit_bytes)

    def storage_cost(self, size: int, epochs: int,
                     storage_rate: Optional[int] = None,
                     write_rate: Optional[int] = None) -> int:
        """Settlement-currency cost of storing one blob"""
        if size < 0 or epochs < 1:
            raise InputValidationError(
                f"Invalid size {size} or epochs {epochs}", phase=UploadState.COST_ESTIMATED
            )
        storage_rate = self.storage_rate if storage_rate is None else storage_rate
        write_rate = self.write_rate if write_rate is None else write_rate
        units = self.units(size)
        return units * storage_rate * epochs + units * write_rate

    def native_for(self, settlement_amount: int) -> int:
        """Native amount that converts to ``settlement_amount`` before buffering"""
        return ceil_div(settlement_amount * self.exchange_rate_numerator,
                        self.exchange_rate_denominator)

    def apply_buffer(self, native_amount: int) -> int:
        buffered = ceil_div(native_amount * (BPS_DENOMINATOR + self.buffer_bps), BPS_DENOMINATOR)
        return buffered + self.flat_buffer

    def estimate(self, sizes: Iterable[int], epochs: int) -> CostEstimate:
        """Sum per-asset storage cost and derive the funding amount"""
        sizes = list(sizes)
        settlement = sum(self.storage_cost(size, epochs) for size in sizes)
        native = self.native_for(settlement)
        estimate = CostEstimate(
            total_bytes=sum(sizes),
            epochs=epochs,
            settlement_amount=settlement,
            native_before_buffer=native,
            native_amount=self.apply_buffer(native),
            buffer_bps=self.buffer_bps,
        )
        logger.info(
            f"[Fee Estimation] Size: {estimate.total_bytes}, settlement: {settlement}, "
            f"native: {estimate.native_amount}"
        )
        return estimate

    def network_requirement(self, sizes: Iterable[int], epochs: int, network: NetworkState) -> Optional[int]:
        """Cost at the network's published prices, if it publishes them"""
        if network.storage_price_per_unit is None:
            return None
        write_price = network.write_price_per_unit or 0
        return sum(
            self.storage_cost(size, epochs, network.storage_price_per_unit, write_price)
            for size in sizes
        )

    def ensure_covers(self, estimate: CostEstimate, required: Optional[int]) -> None:
        """Raise if the estimate does not cover the network requirement"""
        if required is not None and estimate.settlement_amount < required:
            raise FundingInsufficientError(required=required, available=estimate.settlement_amount)
