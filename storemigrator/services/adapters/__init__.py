"""
Remote client adapters, one per entity type.
"""
from .base import RemoteAdapter, create_result
from .collections import CollectionAdapter
from .contacts import ContactAdapter
from .coupons import CouponAdapter
from .discount_rules import DiscountRuleAdapter
from .loyalty import LoyaltyAdapter
from .media import MediaAdapter
from .members import MemberAdapter
from .orders import OrderAdapter
from .products import ProductAdapter

__all__ = [
    'RemoteAdapter',
    'create_result',
    'CollectionAdapter',
    'ContactAdapter',
    'CouponAdapter',
    'DiscountRuleAdapter',
    'LoyaltyAdapter',
    'MediaAdapter',
    'MemberAdapter',
    'OrderAdapter',
    'ProductAdapter',
]
