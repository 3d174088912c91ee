from __future__ import annotations

from typing import Any, Dict

from mobility.charts import chart_payload


PT_SUBSCRIPTIONS = [
    {
        "name": "Verbundabo (Regional Pass)",
        "description": "Unlimited travel within a specific regional transport network (e.g., ZVV for Zürich region).",
    },
    {
        "name": "Halbtax (Half-Fare Card)",
        "description": "50% discount on most public transport tickets in Switzerland.",
    },
    {
        "name": "Strecke (Point-to-point Travelcard)",
        "description": "Unlimited travel on a specific route (e.g., Zurich to Bern).",
    },
    {
        "name": "Gleis 7 (Night GA)",
        "description": "Special subscription for young people aged 7-25, offering unlimited travel after 7 PM.",
    },
    {
        "name": "Junior Card",
        "description": "Free travel for children aged 6-16 when accompanied by a parent with a valid ticket or travelcard.",
    },
    {
        "name": "GA (General Abonnement)",
        "description": (
            "Unlimited travel on nearly all public transport throughout Switzerland, "
            "including trains, buses, boats, and most mountain railways."
        ),
    },
]


def compute_pt_subscription_info() -> Dict[str, Any]:
    return chart_payload("pt-subscription-info", "Swiss PT Subscription Types", data=PT_SUBSCRIPTIONS, kind="info")
