"""Advisory cost estimate for an extraction run.

Token counts are derived from fixed per-unit constants, not provider metering.
Every breakdown is flagged ``estimated`` and must never be shown as a bill.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

# USD per token, keyed by model tier.
PRICING: dict[str, dict[str, float]] = {
    "flash": {"input": 0.075 / 1_000_000, "output": 0.30 / 1_000_000},
    "pro": {"input": 1.25 / 1_000_000, "output": 5.00 / 1_000_000},
    "claude": {"input": 3.00 / 1_000_000, "output": 15.00 / 1_000_000},
}

DOCUMENT_COST = 0.01
IMAGE_COST = 0.05
ITEM_COST = 0.001
COMPLEX_ANALYSIS_COST = 0.02

INPUT_TOKENS_PER_DOCUMENT = 2000
INPUT_TOKENS_PER_IMAGE = 1000
OUTPUT_TOKENS_PER_ITEM = 150
OUTPUT_TOKENS_PER_CALL = 500
INPUT_TOKENS_PER_CALL = {"flash": 1000, "pro": 2000, "claude": 2000}


@dataclass
class ExtractionMetrics:
    document_count: int = 0
    image_count: int = 0
    item_count: int = 0
    api_calls: dict[str, int] = field(default_factory=dict)  # tier -> calls
    has_complex_analysis: bool = False


@dataclass
class CostBreakdown:
    documents: float = 0.0
    images: float = 0.0
    items: float = 0.0
    api_calls: dict[str, float] = field(default_factory=dict)
    complex_analysis: float = 0.0
    total: float = 0.0
    estimated: bool = True

    def to_dict(self) -> dict:
        return {
            "documentProcessing": self.documents,
            "imageProcessing": self.images,
            "itemExtraction": self.items,
            "apiCalls": dict(self.api_calls),
            "complexAnalysis": self.complex_analysis,
            "total": self.total,
            "estimated": self.estimated,
        }


def estimate_tokens(metrics: ExtractionMetrics) -> tuple[int, int]:
    """Return ``(input_tokens, output_tokens)`` for the whole run."""
    calls = sum(metrics.api_calls.values())
    input_tokens = (
        metrics.document_count * INPUT_TOKENS_PER_DOCUMENT
        + metrics.image_count * INPUT_TOKENS_PER_IMAGE
        + sum(
            count * INPUT_TOKENS_PER_CALL.get(tier, 2000)
            for tier, count in metrics.api_calls.items()
        )
    )
    output_tokens = (
        metrics.item_count * OUTPUT_TOKENS_PER_ITEM + calls * OUTPUT_TOKENS_PER_CALL
    )
    return input_tokens, output_tokens


def calculate_extraction_cost(metrics: ExtractionMetrics) -> CostBreakdown:
    """Compute the cost breakdown for a finished run.

    Estimated tokens are attributed to each model tier in proportion to its
    share of the run's completion calls.

    Raises:
        ValueError: If a tier has no pricing entry.
    """
    input_tokens, output_tokens = estimate_tokens(metrics)
    total_calls = sum(metrics.api_calls.values())

    api_costs: dict[str, float] = {}
    for tier, count in metrics.api_calls.items():
        if tier not in PRICING:
            raise ValueError(f"No pricing for model tier {tier!r}")
        share = count / total_calls if total_calls else 0.0
        price = PRICING[tier]
        api_costs[tier] = (
            input_tokens * share * price["input"]
            + output_tokens * share * price["output"]
        )

    breakdown = CostBreakdown(
        documents=metrics.document_count * DOCUMENT_COST,
        images=metrics.image_count * IMAGE_COST,
        items=metrics.item_count * ITEM_COST,
        api_calls=api_costs,
        complex_analysis=COMPLEX_ANALYSIS_COST if metrics.has_complex_analysis else 0.0,
    )
    breakdown.total = round(
        breakdown.documents
        + breakdown.images
        + breakdown.items
        + sum(api_costs.values())
        + breakdown.complex_analysis,
        4,
    )
    return breakdown


def estimate_extraction_cost(
    document_count: int, estimated_items: int, has_images: bool = False
) -> float:
    """Quick pre-run estimate: one Flash call per two documents, one Pro call
    when images are involved."""
    metrics = ExtractionMetrics(
        document_count=document_count,
        image_count=document_count if has_images else 0,
        item_count=estimated_items,
        api_calls={
            "flash": math.ceil(document_count / 2),
            "pro": 1 if has_images else 0,
        },
        has_complex_analysis=estimated_items > 20,
    )
    return calculate_extraction_cost(metrics).total


def format_cost(cost: float) -> str:
    if cost < 0.01:
        return "< $0.01"
    return f"${cost:.2f}"
