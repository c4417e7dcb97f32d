from dataclasses import dataclass
from app.config.constants import (
    PLATFORM_FEE_PER_PERSON,
    VIP_PLATFORM_FEE_DISCOUNT,
    DEFAULT_RESTAURANT_COMMISSION_RATE,
)
from app.models.date_order import PaymentSplit


@dataclass(frozen=True)
class PricingQuote:
    """Charges and payout of one date order, frozen on the order at creation."""
    creator_charge: int
    applicant_charge: int
    restaurant_payout: int
    combo_price: int = 0

    def __post_init__(self):
        for name in ("creator_charge", "applicant_charge", "restaurant_payout", "combo_price"):
            value = getattr(self, name)
            if isinstance(value, bool) or int(value) != value or value < 0:
                raise ValueError(f"{name} must be a non-negative whole number, got {value!r}")
        if self.restaurant_payout > self.creator_charge + self.applicant_charge:
            raise ValueError(
                f"restaurant_payout {self.restaurant_payout} exceeds the "
                f"{self.creator_charge + self.applicant_charge} collected from both parties"
            )

    @property
    def platform_revenue(self) -> int:
        return self.creator_charge + self.applicant_charge - self.restaurant_payout


class PricingResolver:
    """Default pricing: fixed platform fee per person plus each side's combo share.

    Promo codes are resolved elsewhere; callers with a promo pass their own
    PricingQuote to DateOrderService.create_order instead.
    """

    def __init__(
        self,
        platform_fee: int = PLATFORM_FEE_PER_PERSON,
        vip_discount: float = VIP_PLATFORM_FEE_DISCOUNT,
        commission_rate: float = DEFAULT_RESTAURANT_COMMISSION_RATE,
    ):
        self.platform_fee = platform_fee
        self.vip_discount = vip_discount
        self.commission_rate = commission_rate

    def fee_for(self, is_vip: bool) -> int:
        if is_vip:
            return round(self.platform_fee * (1 - self.vip_discount))
        return self.platform_fee

    def quote(
        self,
        combo_price: int,
        payment_split: PaymentSplit = PaymentSplit.SPLIT,
        creator_is_vip: bool = False,
        applicant_is_vip: bool = False,
    ) -> PricingQuote:
        split = PaymentSplit(payment_split)
        if split == PaymentSplit.SPLIT:
            creator_share = round(combo_price / 2)
            applicant_share = combo_price - creator_share
        elif split == PaymentSplit.CREATOR_PAYS:
            creator_share, applicant_share = combo_price, 0
        else:
            creator_share, applicant_share = 0, combo_price

        commission = round(combo_price * self.commission_rate)
        return PricingQuote(
            creator_charge=self.fee_for(creator_is_vip) + creator_share,
            applicant_charge=self.fee_for(applicant_is_vip) + applicant_share,
            restaurant_payout=combo_price - commission,
            combo_price=combo_price,
        )
