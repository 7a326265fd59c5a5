"""Content Safety Layer
====================

Static analysis of generated markup before it reaches a client.

Checks run in a fixed order and their findings are merged into one issue
list (duplicate ids keep the first finding):

1. Injection: inline scripts and event handlers, ``javascript:`` and
   ``data:text/html`` URLs, links to executable or script files. High
   severity, AI-fixable.
2. Sanitizer diff (needs a sanitizer): more than 20% of the markup removed
   by sanitization is a medium issue.
3. Accessibility: local heuristics plus an optional structural auditor.
   Medium under ``strict``, low otherwise.
4. SEO: empty ``<title>``, meta description without content. Low.
5. Policy / copyright: delegated to an optional moderator.

Verdict: ``passed`` only when every issue is low severity. Confidence is
0.9 for a pass and 0.6 otherwise. Identical markup always yields an
identical result.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable, List, Optional, Protocol

from bs4 import BeautifulSoup

from sitegen.constants import IssueType, SafetyLevel, Severity
from sitegen.models.generation import GenerationIssue, ValidationResult

logger = logging.getLogger(__name__)

PASS_CONFIDENCE = 0.9
FAIL_CONFIDENCE = 0.6
SANITIZER_REMOVAL_THRESHOLD = 0.2

INLINE_SCRIPT = re.compile(r'<script[\s>]|\bon[a-z]+\s*=\s*(["\']).*?\1', re.IGNORECASE | re.DOTALL)
JS_URL = re.compile(r'\b(?:javascript:|data:text/html)', re.IGNORECASE)
EXTERNAL_UNSAFE = re.compile(r'https?://[^\s"\']+\.(?:exe|js|bat|cmd|sh)(?:\?[^\s"\']*)?\b', re.IGNORECASE)

IMG_WITHOUT_ALT = re.compile(r'<img\b(?![^>]*\balt\s*=)[^>]*>', re.IGNORECASE)
BUTTON_WITHOUT_LABEL = re.compile(r'<button\b(?![^>]*\baria-label\s*=|[^>]*>\s*[^<\s])', re.IGNORECASE)
ANCHOR_WITHOUT_HREF = re.compile(r'<a\b(?![^>]*\bhref\s*=)[^>]*>', re.IGNORECASE)

EMPTY_TITLE = re.compile(r'<title>\s*</title>', re.IGNORECASE)
META_DESCRIPTION_WITHOUT_CONTENT = re.compile(
    r'<meta\b(?=[^>]*\bname\s*=\s*["\']description["\'])(?![^>]*\bcontent\s*=\s*["\'][^"\']+["\'])[^>]*>',
    re.IGNORECASE,
)

INJECTION_RULES = (
    (
        'unsafe-inline', INLINE_SCRIPT,
        'Inline script or event handler detected',
        'Move scripts into external files from the same origin and attach handlers with addEventListener.',
    ),
    (
        'js-url', JS_URL,
        'javascript: or data:text/html URL detected',
        'Replace the URL with a real link, or use a button with a registered click handler.',
    ),
    (
        'external-exe', EXTERNAL_UNSAFE,
        'Link to an external executable or script file',
        'Remove the link or serve the file from a trusted origin with a safe content type.',
    ),
)

A11Y_RULES = (
    (IMG_WITHOUT_ALT, 'Image missing alt attribute',
     'Add a descriptive alt attribute, or alt="" for decorative images.'),
    (BUTTON_WITHOUT_LABEL, 'Button lacks accessible label',
     'Give the button visible text or an aria-label.'),
    (ANCHOR_WITHOUT_HREF, 'Anchor tag missing href',
     'Add an href, or use a button element for actions.'),
)

SEO_RULES = (
    (EMPTY_TITLE, 'Empty <title>', 'Provide a concise, descriptive page title.'),
    (META_DESCRIPTION_WITHOUT_CONTENT, 'Meta description missing content',
     'Fill the meta description with a 50-160 character summary.'),
)


def slugify(message: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', message.lower()).strip('-')


class MarkupSanitizer(Protocol):
    def sanitize(self, markup: str) -> str: ...


class AccessibilityAuditor(Protocol):
    def audit(self, markup: str) -> List[GenerationIssue]: ...


class ContentModerator(Protocol):
    def review(self, markup: str) -> List[GenerationIssue]: ...


class SoupSanitizer:
    """Drops active content with BeautifulSoup: script-like elements,
    ``on*`` attributes and script URLs."""

    BLOCKED_TAGS = ('script', 'iframe', 'object', 'embed', 'applet', 'base')
    URL_ATTRIBUTES = ('href', 'src', 'action', 'formaction', 'xlink:href')

    def sanitize(self, markup: str) -> str:
        soup = BeautifulSoup(markup, 'html.parser')
        for tag in soup.find_all(self.BLOCKED_TAGS):
            tag.decompose()
        for tag in soup.find_all(True):
            for attr in list(tag.attrs):
                value = tag.attrs[attr]
                if attr.lower().startswith('on'):
                    del tag.attrs[attr]
                elif attr.lower() in self.URL_ATTRIBUTES and isinstance(value, str) and JS_URL.search(value):
                    del tag.attrs[attr]
        return str(soup)


class SoupAccessibilityAuditor:
    """Structural accessibility checks on the parsed document."""

    LABELLED_ATTRIBUTES = ('aria-label', 'aria-labelledby', 'title')
    UNLABELLED_INPUT_TYPES = ('hidden', 'submit', 'button', 'image', 'reset')

    def audit(self, markup: str) -> List[GenerationIssue]:
        soup = BeautifulSoup(markup, 'html.parser')
        findings = []

        html_tag = soup.find('html')
        if html_tag is not None and not html_tag.get('lang'):
            findings.append(('Document missing lang attribute', 'Add lang="en" (or the content language) to <html>.'))

        if any(self._unlabelled(control, soup) for control in soup.find_all(('input', 'select', 'textarea'))):
            findings.append(('Form control missing label',
                             'Associate each control with a <label for=...> or an aria-label.'))

        levels = [int(h.name[1]) for h in soup.find_all(re.compile(r'^h[1-6]$'))]
        if any(b - a > 1 for a, b in zip(levels, levels[1:])):
            findings.append(('Heading levels skip a level', 'Use consecutive heading levels (h1, then h2, ...).'))

        if any(not frame.get('title') for frame in soup.find_all('iframe')):
            findings.append(('Iframe missing title', 'Describe each iframe with a title attribute.'))

        return [
            GenerationIssue(
                id=f"a11y-{slugify(message)}",
                type=IssueType.ACCESSIBILITY,
                message=message,
                severity=Severity.MEDIUM,
                ai_fixable=True,
                suggested_fix=fix,
            )
            for message, fix in findings
        ]

    def _unlabelled(self, control, soup) -> bool:
        if control.name == 'input' and (control.get('type') or 'text').lower() in self.UNLABELLED_INPUT_TYPES:
            return False
        if any(control.get(attr) for attr in self.LABELLED_ATTRIBUTES):
            return False
        if control.find_parent('label') is not None:
            return False
        control_id = control.get('id')
        return not (control_id and soup.find('label', attrs={'for': control_id}))


class ContentSafetyLayer:
    """Security, accessibility and SEO validation of generated markup."""

    def __init__(self, safety_level: SafetyLevel = SafetyLevel.STRICT,
                 sanitizer: Optional[MarkupSanitizer] = None,
                 auditor: Optional[AccessibilityAuditor] = None,
                 moderator: Optional[ContentModerator] = None):
        self.safety_level = SafetyLevel(safety_level)
        self.sanitizer = sanitizer
        self.auditor = auditor
        self.moderator = moderator

    def with_level(self, safety_level: SafetyLevel) -> 'ContentSafetyLayer':
        """Same collaborators at a different strictness."""
        return ContentSafetyLayer(safety_level, self.sanitizer, self.auditor, self.moderator)

    @property
    def a11y_severity(self) -> Severity:
        return Severity.MEDIUM if self.safety_level == SafetyLevel.STRICT else Severity.LOW

    def validate(self, markup: str) -> ValidationResult:
        issues = _dedupe([
            *self.check_injection(markup),
            *self.check_sanitizer_diff(markup),
            *self.check_accessibility(markup),
            *self.check_seo(markup),
            *self.check_policy(markup),
        ])
        passed = all(issue.severity == Severity.LOW for issue in issues)
        if not passed:
            logger.info(f"Markup failed safety validation with {len(issues)} issue(s) at {self.safety_level.value}")
        return ValidationResult(
            passed=passed,
            issues=tuple(issues),
            confidence_score=PASS_CONFIDENCE if passed else FAIL_CONFIDENCE,
        )

    def check_injection(self, markup: str) -> List[GenerationIssue]:
        issues = []
        for issue_id, pattern, message, fix in INJECTION_RULES:
            count = sum(1 for _ in pattern.finditer(markup))
            if count:
                issues.append(GenerationIssue(
                    id=issue_id,
                    type=IssueType.SECURITY,
                    message=f"{message} ({count} occurrence{'s' if count != 1 else ''})",
                    severity=Severity.HIGH,
                    ai_fixable=True,
                    suggested_fix=fix,
                ))
        return issues

    def check_sanitizer_diff(self, markup: str) -> List[GenerationIssue]:
        if self.sanitizer is None or not markup:
            return []
        sanitized = self.sanitizer.sanitize(markup)
        removed = 1 - len(sanitized) / len(markup)
        if removed <= SANITIZER_REMOVAL_THRESHOLD:
            return []
        return [GenerationIssue(
            id='sanitizer-stripped-content',
            type=IssueType.SECURITY,
            message=f"Sanitization removed {removed:.0%} of the markup",
            severity=Severity.MEDIUM,
            ai_fixable=True,
            suggested_fix='Regenerate without scripts, embedded objects or event handler attributes.',
        )]

    def check_accessibility(self, markup: str) -> List[GenerationIssue]:
        severity = self.a11y_severity
        issues = [
            GenerationIssue(
                id=f"a11y-{slugify(message)}",
                type=IssueType.ACCESSIBILITY,
                message=message,
                severity=severity,
                ai_fixable=True,
                suggested_fix=fix,
            )
            for pattern, message, fix in A11Y_RULES
            if pattern.search(markup)
        ]
        if self.auditor is not None:
            issues.extend(replace(issue, severity=severity) for issue in self.auditor.audit(markup))
        return issues

    def check_seo(self, markup: str) -> List[GenerationIssue]:
        return [
            GenerationIssue(
                id=f"seo-{slugify(message)}",
                type=IssueType.SEO,
                message=message,
                severity=Severity.LOW,
                ai_fixable=True,
                suggested_fix=fix,
            )
            for pattern, message, fix in SEO_RULES
            if pattern.search(markup)
        ]

    def check_policy(self, markup: str) -> List[GenerationIssue]:
        """Policy and copyright review; empty until a moderator is wired in."""
        if self.moderator is None:
            return []
        return list(self.moderator.review(markup))


def _dedupe(issues: Iterable[GenerationIssue]) -> List[GenerationIssue]:
    seen = set()
    result = []
    for issue in issues:
        if issue.id in seen:
            continue
        seen.add(issue.id)
        result.append(issue)
    return result
