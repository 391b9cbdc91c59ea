"""
Coin registry: resolves a currency symbol to a registered coin.

Unknown symbols are rejected unless auto-registration is enabled, in which
case a placeholder coin with conversion rate 1 is created and a warning is
logged so product owners can review it. Inactive coins are rejected.
"""

from __future__ import annotations

from decimal import Decimal

from contribution_review.core.exceptions import NotFoundError, ValidationError
from contribution_review.database.database import ContributionRepository
from contribution_review.database.models import CoinRecord
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

MAX_SYMBOL_LEN = 10
MAX_NAME_LEN = 100
PLACEHOLDER_CONVERSION_RATE = Decimal("1")


def normalize_symbol(symbol: str | None) -> str:
    symbol = (symbol or "").strip().upper()
    if not symbol:
        raise ValidationError("currency is required")
    if len(symbol) > MAX_SYMBOL_LEN:
        raise ValidationError(f"currency symbol cannot exceed {MAX_SYMBOL_LEN} characters")
    return symbol


class CoinRegistry:
    def __init__(self, repository: ContributionRepository, *, auto_register_unknown: bool = False) -> None:
        self._repo = repository
        self._auto_register = auto_register_unknown

    def resolve(self, symbol: str, *, submitter_id: str, wallet_address: str | None = None) -> CoinRecord:
        """Return the active coin for `symbol`; ValidationError if unknown (and not auto-registered) or inactive."""
        symbol = normalize_symbol(symbol)
        coin = self._repo.get_coin(symbol)
        if coin is None:
            if not self._auto_register:
                raise ValidationError(f"unsupported currency {symbol}")
            logger.warning(
                "coin_auto_registered",
                symbol=symbol,
                submitter_id=submitter_id,
                conversion_rate=str(PLACEHOLDER_CONVERSION_RATE),
            )
            try:
                coin = self._repo.insert_coin(
                    symbol,
                    symbol,
                    conversion_rate=PLACEHOLDER_CONVERSION_RATE,
                    created_by=submitter_id,
                    wallet_address=wallet_address,
                    network="Other",
                )
            except ValidationError:
                # registered concurrently by another submission
                coin = self._repo.get_coin(symbol)
                if coin is None:
                    raise
        if not coin.is_active:
            raise ValidationError(f"currency {symbol} is not accepted at the moment")
        return coin

    def register(
        self,
        symbol: str,
        name: str,
        *,
        conversion_rate: Decimal,
        created_by: str,
        wallet_address: str | None = None,
        network: str | None = None,
        memo: str | None = None,
        minimum_amount: Decimal = Decimal("0.01"),
    ) -> CoinRecord:
        symbol = normalize_symbol(symbol)
        name = (name or "").strip()
        if not name:
            raise ValidationError("coin name is required")
        if len(name) > MAX_NAME_LEN:
            raise ValidationError(f"coin name cannot exceed {MAX_NAME_LEN} characters")
        if conversion_rate < 0:
            raise ValidationError("conversion rate must not be negative")
        if minimum_amount < 0:
            raise ValidationError("minimum amount must not be negative")
        coin = self._repo.insert_coin(
            symbol,
            name,
            conversion_rate=conversion_rate,
            created_by=created_by,
            wallet_address=wallet_address,
            network=network,
            memo=memo,
            minimum_amount=minimum_amount,
        )
        logger.info("coin_registered", symbol=symbol, conversion_rate=str(conversion_rate), created_by=created_by)
        return coin

    def set_active(self, symbol: str, is_active: bool) -> CoinRecord:
        symbol = normalize_symbol(symbol)
        coin = self._repo.set_coin_active(symbol, is_active)
        if coin is None:
            raise NotFoundError(f"coin {symbol} not found")
        logger.info("coin_active_changed", symbol=symbol, is_active=is_active)
        return coin

    def list_active(self) -> list[CoinRecord]:
        return self._repo.list_coins(active_only=True)

    def list_all(self) -> list[CoinRecord]:
        return self._repo.list_coins(active_only=False)
