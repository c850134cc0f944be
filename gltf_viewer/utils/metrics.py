"""Prometheus metrics for the translation lifecycle.

All metric objects are defined at import time and exposed at `/metrics`.
"""

from __future__ import annotations

from prometheus_client import Counter

translations_started_total = Counter(
    "gltf_translations_started_total",
    "Translation jobs submitted to Onshape",
    ["target"],
)
translation_start_errors_total = Counter(
    "gltf_translation_start_errors_total",
    "Translation submissions rejected by Onshape or the network",
    ["target"],
)
webhook_events_total = Counter(
    "gltf_webhook_events_total",
    "Inbound webhook events",
    ["event"],
)
translation_polls_total = Counter(
    "gltf_translation_polls_total",
    "Translation poll reads by outcome",
    ["outcome"],
)
webhook_registrations_total = Counter(
    "gltf_webhook_registrations_total",
    "Webhook registrations by result",
    ["result"],
)
webhook_unregistrations_total = Counter(
    "gltf_webhook_unregistrations_total",
    "Webhook unregistrations by result",
    ["result"],
)
