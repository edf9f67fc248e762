"""
Reads venue service pricing rows from Supabase.

Only the columns the quote and discount calculations need are selected
from `venue_services`. The client is built server-side from
SUPABASE_SERVICE_ROLE_KEY; that key stays out of browser bundles.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from supabase import create_client, Client

from pricing.core.discount_config import (
    EMPTY_DISCOUNT_CONFIG,
    DiscountConfig,
    resolve_discount_config,
)

SERVICE_PRICING_COLUMNS = (
    "id, venue_id, name, service_type, price, max_tables, guest_pricing_rules, "
    "overall_discount_enabled, overall_discount_percent, group_discounts, "
    "timeslot_discounts, free_hour_discounts"
)


def get_client() -> Client:
    """Create a Supabase client using the service role key."""
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_ROLE_KEY"]
    return create_client(url, key)


def fetch_service(client: Client, service_id: str) -> Optional[Dict[str, Any]]:
    """
    Load the pricing and discount columns of one venue service.
    Returns the row dict, or None if the service does not exist.
    """
    result = (
        client.table("venue_services")
        .select(SERVICE_PRICING_COLUMNS)
        .eq("id", service_id)
        .limit(1)
        .execute()
    )
    rows = result.data
    if rows and len(rows) > 0:
        return rows[0]
    return None


def fetch_discount_config(client: Client, service_id: str) -> DiscountConfig:
    """Discount configuration of a service; empty when the service is missing."""
    row = fetch_service(client, service_id)
    if row is None:
        return EMPTY_DISCOUNT_CONFIG
    return resolve_discount_config(row)
