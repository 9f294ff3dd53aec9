"""
Booking price calculation.

Pipeline for a quote:
    price tier (by adult pax) -> seasonality (high season > weekend > weekday)
    -> pax split (child 50%, infant free) -> tax (inclusive or exclusive)

All money is ``Decimal`` rounded half-up to two places.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import ValidationError
from models.booking import PackagePrice, SeasonCalendar

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
CHILD_PRICE_RATIO = Decimal("0.5")
INFANT_PRICE = Decimal("0")
HIGH_SEASON_TYPES = ("high_season", "peak_season")


def to_money(value: Number) -> Decimal:
    """Quantize to two decimal places, half-up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxBreakdown:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class SeasonalPrice:
    price_per_adult: Decimal
    nta_price_per_adult: Decimal
    is_high_season: bool = False
    is_weekend: bool = False


@dataclass(frozen=True)
class BookingQuote:
    price_per_adult: Decimal
    price_per_child: Decimal
    nta_price_per_adult: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    nta_total: Decimal
    tax_rate: Decimal
    tax_inclusive: bool
    is_high_season: bool
    is_weekend: bool


def calculate_tax(
    subtotal: Number,
    tax_rate: Optional[Number] = None,
    tax_inclusive: bool = False
) -> TaxBreakdown:
    """
    Split ``subtotal`` into tax and total.

    Exclusive: tax is added on top. Inclusive: the subtotal already contains
    the tax, which is backed out for display.
    """
    subtotal = Decimal(str(subtotal))
    rate = Decimal(str(settings.DEFAULT_TAX_RATE if tax_rate is None else tax_rate))

    if subtotal < 0:
        raise ValidationError(
            "Subtotal must not be negative",
            context={"field_name": "subtotal", "field_value": str(subtotal)},
        )
    if rate < 0:
        raise ValidationError(
            "Tax rate must not be negative",
            context={"field_name": "tax_rate", "field_value": str(rate)},
        )

    if tax_inclusive:
        tax = subtotal * rate / (1 + rate)
        total = subtotal
    else:
        tax = subtotal * rate
        total = subtotal + tax

    return TaxBreakdown(
        subtotal=to_money(subtotal),
        tax_amount=to_money(tax),
        total_amount=to_money(total),
    )


def find_price_tier(prices: Sequence[PackagePrice], adult_pax: int) -> Optional[PackagePrice]:
    """Tier whose pax range contains ``adult_pax``, else the first tier."""
    for tier in prices:
        if tier.min_pax <= adult_pax <= tier.max_pax:
            return tier
    return prices[0] if prices else None


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def apply_seasonality(
    tier: PackagePrice,
    trip_date: date,
    season: Optional[SeasonCalendar] = None
) -> SeasonalPrice:
    """
    Adjust a tier for the trip date.

    A high or peak season markup wins over the weekend price; the weekend
    price scales NTA by the same ratio it raises the publish price.
    """
    publish = Decimal(str(tier.price_publish))
    nta = Decimal(str(tier.price_nta))
    weekend = is_weekend(trip_date)

    if season is not None and season.season_type in HIGH_SEASON_TYPES:
        markup = Decimal(str(season.markup_value))
        if season.markup_type == "percent":
            factor = 1 + markup / 100
            publish, nta = publish * factor, nta * factor
        else:
            publish, nta = publish + markup, nta + markup
        return SeasonalPrice(publish, nta, is_high_season=True, is_weekend=weekend)

    if weekend and tier.price_weekend and publish > 0:
        weekend_price = Decimal(str(tier.price_weekend))
        ratio = (weekend_price - publish) / publish
        return SeasonalPrice(weekend_price, nta * (1 + ratio), is_weekend=True)

    return SeasonalPrice(publish, nta, is_weekend=weekend)


def quote_booking(
    prices: Sequence[PackagePrice],
    trip_date: date,
    adult_pax: int,
    child_pax: int = 0,
    infant_pax: int = 0,
    season: Optional[SeasonCalendar] = None,
    tax_rate: Optional[Number] = None,
    tax_inclusive: bool = False
) -> BookingQuote:
    """Price a booking from a package's tiers."""
    if adult_pax < 1:
        raise ValidationError(
            "At least one adult is required",
            context={"field_name": "adult_pax", "field_value": adult_pax},
        )
    if child_pax < 0 or infant_pax < 0:
        raise ValidationError(
            "Pax counts must not be negative",
            context={"child_pax": child_pax, "infant_pax": infant_pax},
        )

    tier = find_price_tier(prices, adult_pax)
    if tier is None:
        raise ValidationError(
            "No pricing available for this pax count",
            context={"field_name": "adult_pax", "field_value": adult_pax},
        )

    seasonal = apply_seasonality(tier, trip_date, season)
    adult_price = seasonal.price_per_adult
    nta_adult = seasonal.nta_price_per_adult

    subtotal = (
        adult_pax * adult_price
        + child_pax * adult_price * CHILD_PRICE_RATIO
        + infant_pax * INFANT_PRICE
    )
    nta_total = adult_pax * nta_adult + child_pax * nta_adult * CHILD_PRICE_RATIO

    rate = Decimal(str(settings.DEFAULT_TAX_RATE if tax_rate is None else tax_rate))
    tax = calculate_tax(subtotal, rate, tax_inclusive)

    return BookingQuote(
        price_per_adult=to_money(adult_price),
        price_per_child=to_money(adult_price * CHILD_PRICE_RATIO),
        nta_price_per_adult=to_money(nta_adult),
        subtotal=tax.subtotal,
        tax_amount=tax.tax_amount,
        total_amount=tax.total_amount,
        nta_total=to_money(nta_total),
        tax_rate=rate,
        tax_inclusive=tax_inclusive,
        is_high_season=seasonal.is_high_season,
        is_weekend=seasonal.is_weekend,
    )


async def find_high_season(
    db: AsyncSession,
    branch_id: str,
    trip_date: date
) -> Optional[SeasonCalendar]:
    """High or peak season covering ``trip_date`` for the branch, if any."""
    stmt = (
        select(SeasonCalendar)
        .where(
            SeasonCalendar.branch_id == branch_id,
            SeasonCalendar.start_date <= trip_date,
            SeasonCalendar.end_date >= trip_date,
            SeasonCalendar.season_type.in_(HIGH_SEASON_TYPES),
        )
        .order_by(SeasonCalendar.start_date.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
