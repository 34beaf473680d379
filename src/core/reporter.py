"""Aggregation of a probe cycle into a SessionSummary."""

from __future__ import annotations

from typing import Iterable, List

from core.classifier import classify
from core.collector import MessageCollector
from core.models import Classification, ConnectionResult, RetrievedMessage, SessionSummary


def summarize(results: Iterable[ConnectionResult], collector: MessageCollector) -> SessionSummary:
    """Count classifications and gather messages in registry order."""

    ordered = list(results)
    counts = {classification: 0 for classification in Classification}
    messages: List[RetrievedMessage] = []
    for result in ordered:
        counts[classify(result)] += 1
        messages.extend(collector.collect(result))
    return SessionSummary(total_servers=len(ordered), counts=counts, messages=messages)


def render_summary(summary: SessionSummary) -> str:
    lines = [f"Total Servers: {summary.total_servers}"]
    for classification in Classification:
        lines.append(f"{classification.label}: {summary.counts.get(classification, 0)}")
    lines.append("Messages: " + " ".join(message.text for message in summary.messages))
    return "\n".join(lines)
