from .user import User, VipTier
from .wallet import WalletAccount, Transaction, TransactionType, TransactionStatus, Payee
from .date_order import DateOrder, OrderStatus, PaymentSplit, ALLOWED_TRANSITIONS, can_transition
from .application import Application, ApplicationStatus
from .review import PersonReview, Connection
from .referral import ReferralReward, RewardStatus
from .payout import RestaurantPayout, PayoutStatus
from .notification import Notification
