"""Coupon authorization for the fulfillment library."""

from fulfillment.coupons.authorizer import Authorization, Clock, CouponAuthorizer, compute_discount

__all__ = [
    "Authorization",
    "Clock",
    "CouponAuthorizer",
    "compute_discount",
]
