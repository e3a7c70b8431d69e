"""PDF report compilation for audit results.

A report is built in two steps. ``build_full_report_plan`` /
``build_lite_report_plan`` turn a parsed Lighthouse report into a content
plan: plain dataclasses holding every page's text, tables and images.
``render_*_html`` lays the plan out as HTML, and ``render_pdf`` prints that
HTML to an A4 PDF with Playwright.
"""

import base64
import html
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .categories import (
    AUDIT_INFO,
    FULL_AUDIT_REFS,
    LITE_AUDIT_INFO,
    LITE_CATEGORY_COLORS,
    PREMIUM_FEATURES,
    TECHNICAL,
    AuditInfo,
    category_colors,
    dig,
)
from .errors import ReportGenerationError
from .logging import log_extra, timed_operation
from .models import ScoreData
from .scoring import score_breakdown

ITEMS_PER_PAGE = 12

GREEN = "#27AE60"
LIGHT_GREEN = "#2ECC71"
ORANGE = "#F39C12"
RED = "#E74C3C"
GREY = "#95A5A6"

_MARKDOWN_LINK = re.compile(r"\[(.*?)\]\(.*?\)")


# =============================================================================
# Ratings and naming
# =============================================================================


def score_color(final_score: float) -> str:
    """Color of the overall score circle in the full report."""
    if final_score >= 90:
        return GREEN
    if final_score >= 50:
        return ORANGE
    return RED


def lite_score_color(final_score: float) -> str:
    """Color of the overall score circle in the quick-scan report."""
    if final_score >= 70:
        return GREEN
    if final_score >= 40:
        return ORANGE
    return RED


def score_rating(score: float | None) -> tuple[str, str]:
    """Label and color of an audit's score bar."""
    if score is None:
        return "Not Applicable", GREY
    if score == 1:
        return "Excellent for Seniors", GREEN
    if score > 0.8:
        return "Good for Seniors", LIGHT_GREEN
    if score > 0.5:
        return "Moderate Issues", ORANGE
    return "Needs Improvement", RED


def summary_rating(score: float | None) -> str:
    """One-word rating used on the summary page."""
    if score is None:
        return "N/A"
    if score == 1:
        return "Excellent"
    if score > 0.8:
        return "Good"
    if score > 0.5:
        return "Needs Work"
    return "Poor"


def lite_status(score: float | None) -> tuple[str, str]:
    """Pass/fail label and bullet color for the quick-scan checklist."""
    if score is None:
        return "N/A", GREY
    if score == 1:
        return "PASS", GREEN
    if score > 0.5:
        return "NEEDS WORK", ORANGE
    return "FAIL", RED


def strip_markdown_links(text: str) -> str:
    """``[label](url)`` -> ``label``."""
    return _MARKDOWN_LINK.sub(r"\1", text)


def pdf_filename(final_url: str, form_factor: str) -> str:
    """Deterministic full-report name, e.g. ``www.example.com-about-desktop.pdf``."""
    sanitized = re.sub(r"https?://", "", final_url, count=1)
    sanitized = re.sub(r"[^a-zA-Z0-9.-]", "-", sanitized)
    sanitized = re.sub(r"-+", "-", sanitized)
    return f"{sanitized}-{form_factor}.pdf"


def lite_pdf_filename(final_url: str) -> str:
    """Quick-scan report name: hostname with dots replaced, e.g. ``www-example-com.pdf``."""
    hostname = urlparse(final_url).hostname or "unknown"
    return f"{hostname.replace('.', '-')}.pdf"


def paginate(items: list[Any], per_page: int = ITEMS_PER_PAGE) -> list[list[Any]]:
    return [items[i : i + per_page] for i in range(0, len(items), per_page)]


def _format_fetch_time(fetch_time: str | None) -> str:
    if not fetch_time:
        return "Unknown"
    try:
        return datetime.fromisoformat(fetch_time).strftime("%B %d, %Y at %I:%M %p")
    except ValueError:
        return fetch_time


# =============================================================================
# Findings tables
# =============================================================================

Extractor = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class TableSpec:
    """Column headers and cell extractors for one audit's findings."""

    headers: tuple[str, ...]
    extractors: tuple[Extractor, ...]

    def row(self, item: dict[str, Any]) -> list[str]:
        return [str(extract(item) or "N/A") for extract in self.extractors]


def _node_selector(item: dict[str, Any]) -> Any:
    return dig(item, "node.selector") or dig(item, "node.path")


def _node_label(item: dict[str, Any]) -> Any:
    return dig(item, "node.nodeLabel") or dig(item, "node.snippet")


TABLE_SPECS: dict[str, TableSpec] = {
    "text-font-audit": TableSpec(
        headers=("Text Content", "Element Selector", "Reason"),
        extractors=(
            lambda item: item.get("textSnippet"),
            lambda item: item.get("containerSelector"),
            lambda item: "Font smaller than 16px - difficult for seniors to read",
        ),
    ),
    "interactive-color-audit": TableSpec(
        headers=("Interactive Text", "Element Location", "Senior Accessibility Issue"),
        extractors=(
            lambda item: item.get("text") or "Interactive Element",
            _node_selector,
            lambda item: item.get("explanation")
            or "Insufficient visual distinction for elderly users",
        ),
    ),
    "layout-brittle-audit": TableSpec(
        headers=("Page Element", "Element Location", "Senior Impact"),
        extractors=(
            lambda item: _node_label(item) or "Layout Element",
            _node_selector,
            lambda item: "Layout may break when seniors adjust text size for better readability",
        ),
    ),
}

DEFAULT_TABLE_SPEC = TableSpec(
    headers=("Element", "Location", "Senior Accessibility Issue"),
    extractors=(
        lambda item: dig(item, "node.nodeLabel") or item.get("nodeLabel") or "Page Element",
        lambda item: dig(item, "node.selector") or item.get("selector"),
        lambda item: dig(item, "node.explanation")
        or item.get("explanation")
        or "May impact senior users",
    ),
)


def table_spec(audit_id: str) -> TableSpec:
    return TABLE_SPECS.get(audit_id, DEFAULT_TABLE_SPEC)


# =============================================================================
# Content plan
# =============================================================================


@dataclass
class ScoreRow:
    name: str
    score: str
    weight: float
    contribution: str


@dataclass
class TablePage:
    title: str
    headers: tuple[str, ...]
    rows: list[list[str]]
    continued: bool = False


@dataclass
class AuditSection:
    """Detail page, optional annotated image and findings tables of one audit."""

    audit_id: str
    info: AuditInfo
    score: float | None
    description: str | None = None
    display_value: str | None = None
    image_path: Path | None = None
    tables: list[TablePage] = field(default_factory=list)


@dataclass
class FullReportPlan:
    """Everything that goes into a full report, page by page."""

    url: str
    generated: str
    form_factor: str
    score_data: ScoreData
    score_rows: list[ScoreRow]
    summary: dict[str, list[tuple[str, str]]]
    sections: list[AuditSection]


@dataclass
class LiteResultLine:
    title: str
    category: str
    status: str
    color: str
    impact: str


@dataclass
class LiteReportPlan:
    url: str
    score_data: ScoreData
    results: list[LiteResultLine]
    premium_features: list[str] = field(default_factory=lambda: list(PREMIUM_FEATURES))


def _table_pages(audit_id: str, info: AuditInfo, items: list[dict[str, Any]]) -> list[TablePage]:
    spec = table_spec(audit_id)
    pages = []
    for index, chunk in enumerate(paginate(items)):
        continued = index > 0
        title = f"{info['title']} (continued)" if continued else f"Detailed Findings: {info['title']}"
        pages.append(
            TablePage(
                title=title,
                headers=spec.headers,
                rows=[spec.row(item) for item in chunk],
                continued=continued,
            )
        )
    return pages


def build_full_report_plan(
    report: dict[str, Any],
    score_data: ScoreData,
    image_paths: dict[str, Path] | None = None,
) -> FullReportPlan:
    """Lay out a full report: intro, score breakdown, summary, one section per audit.

    Only audits with report copy in ``AUDIT_INFO`` are included. Sections are
    grouped by category in the order categories first appear in the report.
    """
    image_paths = image_paths or {}
    audits: dict[str, Any] = report.get("audits") or {}

    score_rows = [
        ScoreRow(
            name=AUDIT_INFO.get(row["id"], {}).get("title", row["id"]),
            score=f"{row['score'] * 100:.0f}",
            weight=row["weight"],
            contribution=f"{row['contribution']:.2f}",
        )
        for row in score_breakdown(FULL_AUDIT_REFS, audits)
    ]

    grouped: dict[str, list[str]] = {}
    for audit_id in audits:
        info = AUDIT_INFO.get(audit_id)
        if info is not None:
            grouped.setdefault(info["category"], []).append(audit_id)

    summary: dict[str, list[tuple[str, str]]] = {}
    sections: list[AuditSection] = []
    for category, audit_ids in grouped.items():
        summary[category] = []
        for audit_id in audit_ids:
            info = AUDIT_INFO[audit_id]
            data = audits[audit_id] or {}
            score = data.get("score")
            summary[category].append((info["title"], summary_rating(score)))

            description = data.get("description")
            items = dig(data, "details.items")
            image = image_paths.get(audit_id)
            sections.append(
                AuditSection(
                    audit_id=audit_id,
                    info=info,
                    score=score,
                    description=strip_markdown_links(description) if description else None,
                    display_value=data.get("displayValue"),
                    image_path=image if image is not None and image.exists() else None,
                    tables=_table_pages(audit_id, info, items) if isinstance(items, list) else [],
                )
            )

    return FullReportPlan(
        url=report.get("finalUrl") or "unknown-url",
        generated=_format_fetch_time(report.get("fetchTime")),
        form_factor=dig(report, "configSettings.formFactor") or "desktop",
        score_data=score_data,
        score_rows=score_rows,
        summary=summary,
        sections=sections,
    )


def build_lite_report_plan(report: dict[str, Any], score_data: ScoreData) -> LiteReportPlan:
    """Lay out a quick-scan report: score plus the essential-checks list."""
    audits: dict[str, Any] = report.get("audits") or {}
    results = []
    for audit_id, info in LITE_AUDIT_INFO.items():
        data = audits.get(audit_id)
        if not data:
            continue
        status, color = lite_status(data.get("score"))
        results.append(
            LiteResultLine(
                title=info["title"],
                category=info["category"],
                status=status,
                color=color,
                impact=info["impact"],
            )
        )
    return LiteReportPlan(
        url=report.get("finalUrl") or "unknown-url",
        score_data=score_data,
        results=results,
    )


# =============================================================================
# HTML rendering
# =============================================================================


def _get_report_styles() -> str:
    """Return CSS styles for the report."""
    return """
        @page { size: A4; margin: 14mm; }
        body { font-family: Helvetica, Arial, sans-serif; color: #2C3E50; font-size: 11pt; }
        .page { break-after: page; }
        .page:last-child { break-after: auto; }
        .banner { background: #34495E; color: white; text-align: center; padding: 24px 0; }
        .banner h1 { margin: 0; font-size: 30pt; }
        .banner p { margin: 6px 0 0; font-size: 18pt; }
        .url-box { background: #ECF0F1; border: 1px solid #BDC3C7; padding: 10px; margin: 20px 0; }
        .score-circle { width: 120px; height: 120px; border-radius: 60px; margin: 20px auto 8px;
                        color: white; font-size: 44pt; font-weight: bold; text-align: center;
                        line-height: 120px; }
        .score-caption { text-align: center; font-weight: bold; font-size: 15pt; }
        .muted { color: #7F8C8D; }
        h2 { text-align: center; font-size: 20pt; }
        h3 { font-size: 13pt; margin-bottom: 4px; }
        .color-bar { height: 4px; margin-bottom: 10px; }
        .section-header { padding: 8px 14px; border: 2px solid; font-weight: bold;
                          font-size: 15pt; margin-top: 16px; }
        .score-bar { display: flex; align-items: center; gap: 14px; margin: 10px 0 16px; }
        .score-bar .track { width: 200px; height: 20px; background: #ECF0F1; }
        .score-bar .fill { height: 20px; }
        .description { background: #F8F9FA; border: 1px solid #E9ECEF; padding: 10px;
                       color: #495057; }
        table { width: 100%; border-collapse: collapse; font-size: 9pt; }
        th { padding: 10px 8px; border: 1px solid; }
        td { padding: 8px; border: 1px solid #E0E0E0; vertical-align: top; word-break: break-word; }
        tr:nth-child(even) td { background: #FAFAFA; }
        .visual { max-width: 100%; max-height: 230mm; display: block; margin: 0 auto; }
        .check { margin: 6px 0 10px 0; }
        .check .dot { display: inline-block; width: 8px; height: 8px; border-radius: 4px;
                      margin-right: 8px; }
        .check .impact { color: #666; font-size: 9pt; margin-left: 16px; }
        .premium { border: 1px solid #1976D2; background: #E3F2FD; padding: 10px; }
    """


def _document(title: str, pages: list[list[str]]) -> str:
    lines = [
        "<!DOCTYPE html>",
        "<html lang='en'>",
        "<head>",
        "    <meta charset='UTF-8'>",
        f"    <title>{html.escape(title)}</title>",
        "    <style>",
        _get_report_styles(),
        "    </style>",
        "</head>",
        "<body>",
    ]
    for page in pages:
        lines.append("<section class='page'>")
        lines.extend(page)
        lines.append("</section>")
    lines.extend(["</body>", "</html>"])
    return "\n".join(lines)


def _image_data_uri(path: Path) -> str:
    encoded = base64.b64encode(path.read_bytes()).decode()
    return f"data:image/png;base64,{encoded}"


def _color_bar(category: str) -> str:
    return f"<div class='color-bar' style='background: {category_colors(category)['border']}'></div>"


def _table(headers: tuple[str, ...], rows: list[list[str]], category: str) -> list[str]:
    colors = category_colors(category)
    head = "".join(
        f"<th style='background: {colors['bg']}; border-color: {colors['border']}; "
        f"color: {colors['text']}'>{html.escape(h)}</th>"
        for h in headers
    )
    lines = ["<table>", f"<tr>{head}</tr>"]
    for row in rows:
        cells = "".join(f"<td>{html.escape(cell)}</td>" for cell in row)
        lines.append(f"<tr>{cells}</tr>")
    lines.append("</table>")
    return lines


def _intro_page(plan: FullReportPlan) -> list[str]:
    score = plan.score_data.final_score
    return [
        "<div class='banner'><h1>Silver Surfers</h1><p>Accessibility Audit Report</p></div>",
        f"<div class='url-box'><strong>Website Analyzed:</strong> {html.escape(plan.url)}</div>",
        f"<div class='score-circle' style='background: {score_color(score)}'>{round(score)}</div>",
        "<p class='score-caption'>Overall Silver Surfers Score</p>",
        f"<p class='muted'>Report Generated: {html.escape(plan.generated)}"
        f" ({html.escape(plan.form_factor)})</p>",
        "<h3 style='color: #2980B9'>Our Mission: Digital Inclusion for Seniors</h3>",
        "<p>This audit evaluates the website from the perspective of older users, with a focus "
        "on age-related vision changes, motor considerations, cognitive load and familiarity "
        "with technology.</p>",
    ]


def _score_calculation_page(plan: FullReportPlan) -> list[str]:
    data = plan.score_data
    rows = [[r.name, r.score, f"{r.weight:g}", r.contribution] for r in plan.score_rows]
    return [
        "<h2>How Your Score Was Calculated</h2>",
        "<p>The final score is a weighted average of individual audits. Audits with a greater "
        "impact on older users carry a higher weight and contribute more to the result.</p>",
        *_table(("Audit Component", "Score", "Weight", "Weighted Contribution"), rows, TECHNICAL),
        f"<h3 style='color: #2980B9'>Final Calculation: {data.total_weighted_score:.2f} "
        f"(Total Points) / {data.total_weight:g} (Total Weight) = {data.final_score:.0f}</h3>",
    ]


def _summary_page(plan: FullReportPlan) -> list[str]:
    lines = ["<h2>Audit Summary by Category</h2>"]
    for category, entries in plan.summary.items():
        colors = category_colors(category)
        lines.append(
            f"<div class='section-header' style='background: {colors['bg']}; "
            f"border-color: {colors['border']}; color: {colors['text']}'>"
            f"{html.escape(category)}</div>"
        )
        lines.append("<ul>")
        lines.extend(
            f"<li>{html.escape(title)}: {html.escape(rating)}</li>" for title, rating in entries
        )
        lines.append("</ul>")
    return lines


def _detail_page(section: AuditSection) -> list[str]:
    info = section.info
    label, color = score_rating(section.score)
    fill = "" if section.score is None else (
        f"<div class='fill' style='width: {max(section.score, 0.05) * 100:.0f}%; "
        f"background: {color}'></div>"
    )
    lines = [
        _color_bar(info["category"]),
        f"<h2>{html.escape(info['title'])}</h2>",
        f"<div class='score-bar'><div class='track'>{fill}</div>"
        f"<strong>Silver Surfer Score: {label}</strong></div>",
    ]
    if section.description:
        lines.append(f"<div class='description'>{html.escape(section.description)}</div>")
    lines.extend(
        [
            "<h3 style='color: #E67E22'>Why This Matters for Silver Surfers</h3>",
            f"<p>{html.escape(info['importance'])}</p>",
            "<h3 style='color: #8E44AD'>Impact on Silver Surfers</h3>",
            f"<p>{html.escape(info['why'])}</p>",
        ]
    )
    if info.get("recommendation"):
        lines.extend(
            [
                "<h3 style='color: #27AE60'>How to Improve for Silver Surfers</h3>",
                f"<p>{html.escape(info['recommendation'])}</p>",
            ]
        )
    if section.display_value:
        lines.extend(
            [
                "<h3 style='color: #2980B9'>Detailed Results</h3>",
                f"<p>{html.escape(section.display_value)}</p>",
            ]
        )
    return lines


def _image_page(section: AuditSection) -> list[str]:
    if section.image_path is None:
        raise RuntimeError(f"No annotated image for {section.audit_id}")
    info = section.info
    return [
        _color_bar(info["category"]),
        f"<h3>Visual Analysis: {html.escape(info['title'])}</h3>",
        f"<img class='visual' src='{_image_data_uri(section.image_path)}' "
        f"alt='Highlighted issues for {html.escape(info['title'])}' />",
    ]


def _table_page(section: AuditSection, table: TablePage) -> list[str]:
    lines = [] if table.continued else [_color_bar(section.info["category"])]
    lines.append(f"<h3>{html.escape(table.title)}</h3>")
    lines.extend(_table(table.headers, table.rows, section.info["category"]))
    return lines


def render_full_html(plan: FullReportPlan) -> str:
    """HTML of a full report, one ``<section class='page'>`` per printed page."""
    pages = [_intro_page(plan), _score_calculation_page(plan), _summary_page(plan)]
    for section in plan.sections:
        pages.append(_detail_page(section))
        if section.image_path is not None:
            pages.append(_image_page(section))
        pages.extend(_table_page(section, table) for table in section.tables)
    return _document(f"Silver Surfers Report - {plan.url}", pages)


def render_lite_html(plan: LiteReportPlan) -> str:
    """HTML of a quick-scan report."""
    score = plan.score_data.final_score
    results = ["<p style='color: #2980B9'><strong>Key Areas Checked:</strong></p>"]
    for line in plan.results:
        border = LITE_CATEGORY_COLORS.get(line.category, {}).get("border", "#616161")
        results.extend(
            [
                f"<div class='check' style='border-left: 3px solid {border}; padding-left: 6px'>",
                f"<span class='dot' style='background: {line.color}'></span>"
                f"<strong>{html.escape(line.title)}: {line.status}</strong>",
                f"<div class='impact'>{html.escape(line.impact)}</div>",
                "</div>",
            ]
        )
    first_page = [
        "<div class='banner'><h1>Silver Surfers Report</h1>"
        "<p>Lite Version - Essential Checks</p></div>",
        f"<p class='muted'>Website: {html.escape(plan.url)}</p>",
        f"<div class='score-circle' style='background: {lite_score_color(score)}'>"
        f"{round(score)}</div>",
        "<p class='score-caption'>Silver Surfers Lite Score</p>",
        *results,
    ]
    premium_page = [
        "<div class='banner'><h1>Upgrade to Premium Silver Surfers</h1>"
        "<p>Unlock the complete senior accessibility analysis</p></div>",
        "<h3 style='color: #E74C3C'>What You're Missing in the Lite Version:</h3>",
        "<div class='premium'><ul>",
        *(f"<li>{html.escape(feature)}</li>" for feature in plan.premium_features),
        "</ul></div>",
        "<p class='muted'>This lite version gives a basic overview of essential senior "
        "accessibility checks. The full audit adds every page of the site on desktop and "
        "mobile, annotated screenshots and detailed recommendations.</p>",
    ]
    return _document(f"Silver Surfers Lite Report - {plan.url}", [first_page, premium_page])


# =============================================================================
# PDF output
# =============================================================================


async def render_pdf(document: str, output_path: Path) -> Path:
    """Print an HTML document to an A4 PDF using Playwright."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch()
            try:
                page = await browser.new_page()
                await page.set_content(document, wait_until="load")
                await page.pdf(path=str(output_path), format="A4", print_background=True)
            finally:
                await browser.close()
    except PlaywrightError as e:
        raise ReportGenerationError(f"Could not render {output_path.name}: {e}") from e
    return output_path


async def compile_full_report(
    report: dict[str, Any],
    score_data: ScoreData,
    image_paths: dict[str, Path],
    output_dir: Path,
) -> Path:
    """Build, render and save the full report of one (url, device) audit."""
    plan = build_full_report_plan(report, score_data, image_paths)
    output_path = output_dir / pdf_filename(plan.url, plan.form_factor)
    async with timed_operation(
        "compile_full_report",
        url=plan.url,
        device=plan.form_factor,
        sections=len(plan.sections),
    ):
        await render_pdf(render_full_html(plan), output_path)
    log_extra("Report generated", path=str(output_path), score=round(score_data.final_score))
    return output_path


async def compile_lite_report(
    report: dict[str, Any],
    score_data: ScoreData,
    output_dir: Path,
) -> Path:
    """Build, render and save a quick-scan report."""
    final_url = report.get("finalUrl")
    if not final_url:
        raise ReportGenerationError("The report JSON must contain a finalUrl property.")
    plan = build_lite_report_plan(report, score_data)
    output_path = output_dir / lite_pdf_filename(final_url)
    async with timed_operation("compile_lite_report", url=final_url):
        await render_pdf(render_lite_html(plan), output_path)
    return output_path
