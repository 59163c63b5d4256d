"""
Per-entity migration pipelines.
"""
from .base import BasePipeline, PipelineResult, RunContext, DRY_RUN_MESSAGE
from .collections import CollectionPipeline
from .products import ProductPipeline
from .contacts import ContactPipeline
from .orders import OrderPipeline
from .coupons import CouponPipeline
from .discount_rules import DiscountRulePipeline
from .media import MediaPipeline
from .loyalty import LoyaltyPipeline

__all__ = [
    'BasePipeline',
    'PipelineResult',
    'RunContext',
    'DRY_RUN_MESSAGE',
    'CollectionPipeline',
    'ProductPipeline',
    'ContactPipeline',
    'OrderPipeline',
    'CouponPipeline',
    'DiscountRulePipeline',
    'MediaPipeline',
    'LoyaltyPipeline',
]
