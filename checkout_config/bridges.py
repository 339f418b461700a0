"""
Config -> Kernel Bridges.

Functions that convert a CheckoutConfig into kernel-compatible inputs.
These live in checkout_config (the producer) because the kernel must
NEVER import checkout_config.

Usage:
    from checkout_config.bridges import build_intent_policy, build_tax_calculator

    config = get_active_config()
    policy = build_intent_policy(config)
    tax = build_tax_calculator(config)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from checkout_config.schema import CheckoutConfig
from checkout_kernel.domain.collaborators import (
    DiscountRule,
    InMemoryCatalog,
    PercentageTaxCalculator,
    StaticDiscountValidator,
    ThresholdShippingCalculator,
    VariantInfo,
)
from checkout_kernel.services.order_intent_service import IntentPolicy


def build_intent_policy(config: CheckoutConfig) -> IntentPolicy:
    """Hold duration, reuse behaviour, kill switch and rounding mode."""
    return IntentPolicy(
        hold_duration=timedelta(minutes=config.holds.duration_minutes),
        reuse_active_intent=config.holds.reuse_active_intent,
        checkout_enabled=config.accepting_checkouts,
        rounding=config.pricing.rounding,
    )


def build_tax_calculator(config: CheckoutConfig) -> PercentageTaxCalculator:
    return PercentageTaxCalculator(config.pricing.tax_percentage)


def build_shipping_calculator(config: CheckoutConfig) -> ThresholdShippingCalculator:
    return ThresholdShippingCalculator(
        free_shipping_threshold=config.pricing.free_shipping_threshold,
        shipping_charge=config.pricing.shipping_charge,
    )


def build_discount_validator(config: CheckoutConfig) -> StaticDiscountValidator:
    return StaticDiscountValidator({
        d.code: DiscountRule(
            percentage=d.percentage,
            amount=d.amount,
            min_subtotal=d.min_subtotal,
            max_discount=d.max_discount,
        )
        for d in config.discounts
    })


def build_catalog(config: CheckoutConfig) -> InMemoryCatalog:
    """In-process catalog holding the configured variants."""
    return InMemoryCatalog([
        VariantInfo(
            variant_id=v.variant_id,
            unit_price=v.price,
            product_id=v.product_id,
            product_name=v.product_name,
            is_active=v.is_active,
            attributes=dict(v.attributes),
        )
        for v in config.catalog
    ])


def build_service_kwargs(config: CheckoutConfig) -> dict[str, Any]:
    """
    Keyword arguments for CheckoutOrchestrator derived from config.

    The catalog and address validator are not included; callers pass the
    collaborators they own.
    """
    return {
        "policy": build_intent_policy(config),
        "tax_calculator": build_tax_calculator(config),
        "shipping_calculator": build_shipping_calculator(config),
        "discount_validator": build_discount_validator(config),
    }
