"""Audit categories: weighted references, annotation profiles and report copy.

Everything that used to be keyed by ad hoc audit-id strings lives here as data.
The scoring module reads the reference lists, the annotation renderer reads
``AnnotatedAudit`` and the report compiler reads ``AUDIT_INFO``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, TypedDict

FULL_CATEGORY_ID = "senior-friendly"
LITE_CATEGORY_ID = "senior-friendly-lite"


class AuditRef(TypedDict):
    """One weighted entry of a Lighthouse category."""

    id: str
    weight: float


FULL_AUDIT_REFS: list[AuditRef] = [
    # Tier 1: critical
    {"id": "color-contrast", "weight": 10},
    {"id": "target-size", "weight": 10},
    {"id": "viewport", "weight": 10},
    {"id": "cumulative-layout-shift", "weight": 10},
    {"id": "text-font-audit", "weight": 10},
    {"id": "layout-brittle-audit", "weight": 10},
    # Tier 2: important
    {"id": "largest-contentful-paint", "weight": 5},
    {"id": "total-blocking-time", "weight": 5},
    {"id": "link-name", "weight": 5},
    {"id": "button-name", "weight": 5},
    {"id": "label", "weight": 5},
    {"id": "interactive-color-audit", "weight": 5},
    # Tier 3: foundational
    {"id": "is-on-https", "weight": 2},
    {"id": "dom-size", "weight": 2},
    {"id": "heading-order", "weight": 2},
    {"id": "errors-in-console", "weight": 2},
    {"id": "geolocation-on-start", "weight": 2},
]

LITE_AUDIT_REFS: list[AuditRef] = [
    {"id": "color-contrast", "weight": 5},
    {"id": "target-size", "weight": 5},
    {"id": "font-size", "weight": 5},
    {"id": "viewport", "weight": 3},
    {"id": "link-name", "weight": 3},
    {"id": "button-name", "weight": 3},
    {"id": "label", "weight": 3},
    {"id": "heading-order", "weight": 2},
    {"id": "is-on-https", "weight": 2},
    {"id": "largest-contentful-paint", "weight": 1},
    {"id": "cumulative-layout-shift", "weight": 1},
]

CATEGORY_REFS: dict[str, list[AuditRef]] = {
    FULL_CATEGORY_ID: FULL_AUDIT_REFS,
    LITE_CATEGORY_ID: LITE_AUDIT_REFS,
}


# =============================================================================
# Annotation profiles
# =============================================================================


@dataclass(frozen=True)
class AnnotationProfile:
    """How findings of one audit are boxed, filtered and drawn."""

    audit_id: str
    suffix: str
    color: str
    rect_path: str  # dotted path to the rectangle inside a details item
    label_paths: tuple[str, ...]
    explanation_path: str | None = None
    containment_filter: bool = False
    visibility_filter: bool = True
    min_badge: int = 10
    scale_factor: float = 1.0


class AnnotatedAudit(Enum):
    """The five audits that get an annotated screenshot."""

    LAYOUT_BRITTLE = AnnotationProfile(
        audit_id="layout-brittle-audit",
        suffix="layout-brittle",
        color="blue",
        rect_path="node.boundingRect",
        label_paths=("node.nodeLabel",),
        explanation_path="reason",
        visibility_filter=False,
        min_badge=8,
    )
    INTERACTIVE_COLOR = AnnotationProfile(
        audit_id="interactive-color-audit",
        suffix="interactive-color",
        color="orange",
        rect_path="node.boundingRect",
        label_paths=("text",),
        explanation_path="explanation",
    )
    COLOR_CONTRAST = AnnotationProfile(
        audit_id="color-contrast",
        suffix="color-contrast",
        color="yellow",
        rect_path="node.boundingRect",
        label_paths=("node.nodeLabel", "node.selector"),
        explanation_path="node.explanation",
    )
    TARGET_SIZE = AnnotationProfile(
        audit_id="target-size",
        suffix="target-size",
        color="red",
        rect_path="node.boundingRect",
        label_paths=("node.nodeLabel", "node.selector"),
        explanation_path="node.explanation",
    )
    TEXT_FONT = AnnotationProfile(
        audit_id="text-font-audit",
        suffix="text-font",
        color="red",
        rect_path="rect",
        label_paths=("textSnippet",),
        containment_filter=True,
        min_badge=8,
    )

    @property
    def profile(self) -> AnnotationProfile:
        return self.value

    @property
    def audit_id(self) -> str:
        return self.value.audit_id

    @classmethod
    def from_audit_id(cls, audit_id: str) -> "AnnotatedAudit":
        """Look up a member by its Lighthouse audit id."""
        for member in cls:
            if member.value.audit_id == audit_id:
                return member
        raise KeyError(audit_id)


def dig(data: Any, path: str) -> Any:
    """Follow a dotted key path through nested dicts, returning None when absent."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


# =============================================================================
# Report copy
# =============================================================================

VISION = "Vision Accessibility"
MOTOR = "Motor Accessibility"
COGNITIVE = "Cognitive Accessibility"
PERFORMANCE = "Performance for Seniors"
SECURITY = "Security for Seniors"
TECHNICAL = "Technical Accessibility"


class AuditInfo(TypedDict):
    title: str
    category: str
    importance: str
    why: str
    recommendation: str


AUDIT_INFO: dict[str, AuditInfo] = {
    "text-font-audit": {
        "title": "Text Size and Readability",
        "category": VISION,
        "importance": "Many older readers have presbyopia; text below 16px causes eye strain "
        "and is often skipped entirely.",
        "why": "Age-related vision changes make small type hard to read without zooming.",
        "recommendation": "Keep body text at 16px or larger and size it in rem units so "
        "browser zoom and font preferences apply.",
    },
    "color-contrast": {
        "title": "Color Contrast",
        "category": VISION,
        "importance": "Cataracts and macular degeneration reduce perceived contrast, so "
        "low-contrast text can disappear completely.",
        "why": "Ageing eyes need more contrast to separate text from its background.",
        "recommendation": "Aim for 4.5:1 for normal text and 3:1 for large text (WCAG AA).",
    },
    "interactive-color-audit": {
        "title": "Interactive Elements Stand Out",
        "category": VISION,
        "importance": "Links that differ from body text by color alone are easy to miss for "
        "readers with changed color perception.",
        "why": "Reduced acuity makes color-only cues unreliable.",
        "recommendation": "Pair link color with another cue such as an underline or weight.",
    },
    "target-size": {
        "title": "Touch Target Size",
        "category": MOTOR,
        "importance": "Tremors and arthritis make small buttons and links hard to hit.",
        "why": "Small, crowded targets lead to mis-taps and abandoned tasks.",
        "recommendation": "Make interactive elements at least 48x48 pixels with spacing "
        "between neighbours.",
    },
    "layout-brittle-audit": {
        "title": "Text Spacing Flexibility",
        "category": MOTOR,
        "importance": "Readers who enlarge text spacing break fixed-height containers, "
        "which then clip or overlap content.",
        "why": "Personalised spacing is a common reading aid for older users.",
        "recommendation": "Avoid fixed heights on text containers; prefer Flexbox or Grid "
        "layouts that grow with their content.",
    },
    "heading-order": {
        "title": "Logical Content Structure",
        "category": COGNITIVE,
        "importance": "A consistent heading hierarchy shows how a page is organised.",
        "why": "Clear structure lowers cognitive load when scanning a page.",
        "recommendation": "Use one H1, then H2 for sections and H3 for sub-sections "
        "without skipping levels.",
    },
    "button-name": {
        "title": "Clear Button Labels",
        "category": COGNITIVE,
        "importance": "Buttons should say what they do; vague labels create hesitation.",
        "why": "Descriptive labels build confidence before a click.",
        "recommendation": "Label buttons with the action, for example 'Download report'.",
    },
    "link-name": {
        "title": "Descriptive Link Text",
        "category": COGNITIVE,
        "importance": "Link text such as 'read more' does not say where a link leads.",
        "why": "Meaningful link text lets readers navigate without guessing.",
        "recommendation": "Write link text that makes sense out of context.",
    },
    "label": {
        "title": "Form Field Labels",
        "category": COGNITIVE,
        "importance": "Unlabelled fields make forms confusing and error-prone.",
        "why": "Visible labels help readers complete important tasks.",
        "recommendation": "Give every input a visible, programmatically associated label.",
    },
    "largest-contentful-paint": {
        "title": "Page Loading Speed",
        "category": PERFORMANCE,
        "importance": "Slow pages look broken to readers who are less familiar with the web.",
        "why": "Long blank screens are often mistaken for failures.",
        "recommendation": "Show the main content within 2.5 seconds.",
    },
    "cumulative-layout-shift": {
        "title": "Stable Page Layout",
        "category": PERFORMANCE,
        "importance": "Content that jumps while loading causes mis-clicks.",
        "why": "Predictable layouts are easier to use with slower reactions.",
        "recommendation": "Reserve space for images and embeds before they load.",
    },
    "total-blocking-time": {
        "title": "Page Responsiveness",
        "category": PERFORMANCE,
        "importance": "Unresponsive pages feel broken and invite repeated clicks.",
        "why": "Immediate feedback confirms that an action was received.",
        "recommendation": "Split long JavaScript tasks to keep the main thread free.",
    },
    "is-on-https": {
        "title": "Secure Connection",
        "category": SECURITY,
        "importance": "Older users are frequent targets of scams; HTTPS protects their data.",
        "why": "A padlock in the address bar is a trust signal many users look for.",
        "recommendation": "Serve every page over HTTPS.",
    },
    "geolocation-on-start": {
        "title": "Respectful Location Requests",
        "category": SECURITY,
        "importance": "Unexpected permission prompts alarm users who cannot tell why they "
        "appear.",
        "why": "Requests without context erode trust.",
        "recommendation": "Only request location in response to an explicit user action.",
    },
    "viewport": {
        "title": "Mobile-Friendly Design",
        "category": TECHNICAL,
        "importance": "Many older users browse on tablets and phones.",
        "why": "Without a viewport tag text renders tiny or needs horizontal scrolling.",
        "recommendation": 'Add <meta name="viewport" content="width=device-width, '
        'initial-scale=1"> to every page.',
    },
    "dom-size": {
        "title": "Page Complexity",
        "category": TECHNICAL,
        "importance": "Very large pages slow down assistive technology.",
        "why": "Simpler pages are faster and easier to navigate.",
        "recommendation": "Keep the DOM below roughly 1,500 elements.",
    },
    "errors-in-console": {
        "title": "Technical Stability",
        "category": TECHNICAL,
        "importance": "Script errors can silently break features assistive tools rely on.",
        "why": "Broken widgets are harder to work around for less experienced users.",
        "recommendation": "Monitor the browser console and fix reported errors.",
    },
    "font-size": {
        "title": "Overall Font Size",
        "category": VISION,
        "importance": "Consistently legible text keeps every part of the page readable.",
        "why": "Predictable, large type supports independent browsing.",
        "recommendation": "Ensure no running text falls below a 16px computed size.",
    },
}


class CategoryColors(TypedDict):
    bg: str
    border: str
    text: str


CATEGORY_COLORS: dict[str, CategoryColors] = {
    VISION: {"bg": "#E3F2FD", "border": "#1976D2", "text": "#0D47A1"},
    MOTOR: {"bg": "#F3E5F5", "border": "#7B1FA2", "text": "#4A148C"},
    COGNITIVE: {"bg": "#E8F5E8", "border": "#388E3C", "text": "#1B5E20"},
    PERFORMANCE: {"bg": "#FFF3E0", "border": "#F57C00", "text": "#E65100"},
    SECURITY: {"bg": "#FFEBEE", "border": "#D32F2F", "text": "#B71C1C"},
    TECHNICAL: {"bg": "#F5F5F5", "border": "#616161", "text": "#212121"},
}


def category_colors(category: str) -> CategoryColors:
    """Colors for a report category, falling back to the technical palette."""
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[TECHNICAL])


# Short copy for the quick-scan report
LITE_AUDIT_INFO: dict[str, dict[str, str]] = {
    "color-contrast": {"title": "Color Contrast", "category": "Vision",
                       "impact": "Essential for reading text with age-related vision changes."},
    "target-size": {"title": "Touch Target Size", "category": "Motor",
                    "impact": "Larger buttons help users with tremors or arthritis."},
    "font-size": {"title": "Font Size", "category": "Vision",
                  "impact": "Larger fonts matter for readers with presbyopia."},
    "viewport": {"title": "Mobile Design", "category": "Technical",
                 "impact": "Proper display on the tablets and phones many seniors use."},
    "link-name": {"title": "Link Text", "category": "Cognitive",
                  "impact": "Clear link descriptions make navigation predictable."},
    "button-name": {"title": "Button Labels", "category": "Cognitive",
                    "impact": "Descriptive button text prevents confusion."},
    "label": {"title": "Form Labels", "category": "Cognitive",
              "impact": "Clear labels help users finish forms."},
    "heading-order": {"title": "Content Structure", "category": "Cognitive",
                      "impact": "Logical headings reduce cognitive load."},
    "is-on-https": {"title": "Security", "category": "Security",
                    "impact": "Secure connections protect against scams."},
    "largest-contentful-paint": {"title": "Loading Speed", "category": "Performance",
                                 "impact": "Fast pages are not mistaken for broken ones."},
    "cumulative-layout-shift": {"title": "Stable Layout", "category": "Performance",
                                "impact": "Stable pages prevent clicks on the wrong element."},
}

LITE_CATEGORY_COLORS: dict[str, dict[str, str]] = {
    "Vision": {"bg": "#E3F2FD", "border": "#1976D2"},
    "Motor": {"bg": "#F3E5F5", "border": "#7B1FA2"},
    "Cognitive": {"bg": "#E8F5E8", "border": "#388E3C"},
    "Performance": {"bg": "#FFF3E0", "border": "#F57C00"},
    "Security": {"bg": "#FFEBEE", "border": "#D32F2F"},
    "Technical": {"bg": "#F5F5F5", "border": "#616161"},
}

PREMIUM_FEATURES: list[str] = [
    "In-depth text size and readability analysis",
    "Detection of links distinguished by color alone",
    "Text spacing flexibility testing",
    "Annotated screenshots highlighting every problem area",
    "Multi-page audit on desktop and mobile",
    "Score calculation breakdown with per-audit weights",
]
