"""Weighted senior-friendliness scoring.

The score is the weight-averaged Lighthouse score of every referenced audit,
expressed as a percentage. Missing or unscored audits count as zero but keep
their weight, so partial reports are biased downwards rather than rejected.
Degenerate inputs return a zero sentinel with an ``error`` instead of raising.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from .categories import CATEGORY_REFS, AuditRef
from .logging import log_extra
from .models import ScoreData


def _result_score(result: Any) -> float:
    if not isinstance(result, Mapping):
        return 0.0
    score = result.get("score")
    if score is None:
        return 0.0
    return float(score)


def calculate_score(
    audit_refs: Sequence[AuditRef] | None,
    audit_results: Mapping[str, Any] | None,
) -> ScoreData:
    """Aggregate audit results into a single weighted percentage.

    Args:
        audit_refs: ``{"id", "weight"}`` entries of the category being scored
        audit_results: The ``audits`` map of a Lighthouse report

    Returns:
        ScoreData; ``final_score == 0`` with ``error`` set when no score can be computed
    """
    if not audit_refs:
        log_extra("No audit references to score", logging.ERROR)
        return ScoreData(final_score=0, error="No audit references")

    results = audit_results or {}
    total_weighted_score = 0.0
    total_weight = 0.0
    processed = 0
    missing: list[str] = []

    for ref in audit_refs:
        audit_id = ref["id"]
        weight = float(ref["weight"])
        result = results.get(audit_id)
        if result is None:
            missing.append(audit_id)
        else:
            processed += 1
        score = _result_score(result)
        total_weighted_score += score * weight
        total_weight += weight

    if missing:
        log_extra(
            "Audit results missing from report",
            logging.WARNING,
            missing=",".join(missing),
            processed=processed,
            referenced=len(audit_refs),
        )

    if total_weight == 0:
        log_extra("Total weight is 0, cannot calculate score", logging.ERROR)
        return ScoreData(
            final_score=0,
            error="Zero total weight",
            missing_audits=missing,
            processed_audits=processed,
        )

    final_score = total_weighted_score / total_weight * 100
    log_extra(
        "Score calculated",
        logging.DEBUG,
        final_score=round(final_score, 2),
        total_weighted_score=total_weighted_score,
        total_weight=total_weight,
    )
    return ScoreData(
        final_score=final_score,
        total_weighted_score=total_weighted_score,
        total_weight=total_weight,
        missing_audits=missing,
        processed_audits=processed,
    )


def score_report(report: Mapping[str, Any], category_id: str) -> ScoreData:
    """Score a parsed Lighthouse report against one of the known categories."""
    refs = CATEGORY_REFS.get(category_id)
    if refs is None:
        log_extra("Category not found", logging.ERROR, category=category_id)
        return ScoreData(final_score=0, error="Category not found")
    return calculate_score(refs, report.get("audits"))


def score_breakdown(
    audit_refs: Sequence[AuditRef], audit_results: Mapping[str, Any]
) -> list[dict[str, Any]]:
    """Per-audit rows for the 'how your score was calculated' table."""
    rows = []
    for ref in audit_refs:
        score = _result_score(audit_results.get(ref["id"]))
        rows.append(
            {
                "id": ref["id"],
                "score": score,
                "weight": ref["weight"],
                "contribution": score * ref["weight"],
            }
        )
    return rows
