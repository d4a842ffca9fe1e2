"""
Text cleanup helpers for generated narrative and interaction descriptions.
"""
from __future__ import annotations

import re
import unicodedata

_HTML_TAG_RE = re.compile(r'<[^>]+>')
_MD_HEADER_RE = re.compile(r'^\s*#{1,6}\s*(.+?)$', re.MULTILINE)
_MD_BOLD_ASTERISK_RE = re.compile(r'\*\*(.+?)\*\*')
_MD_BOLD_UNDERSCORE_RE = re.compile(r'__(.+?)__')
_MD_ITALIC_ASTERISK_RE = re.compile(r'(?<!\w)\*([^*\n]+?)\*(?!\w)')
_MD_ITALIC_UNDERSCORE_RE = re.compile(r'(?<!\w)_([^_\n]+?)_(?!\w)')
_MD_BULLET_RE = re.compile(r'^\s*[-*•]\s+', re.MULTILINE)
_MD_BLOCKQUOTE_RE = re.compile(r'^\s*>\s?', re.MULTILINE)
_MD_RULE_RE = re.compile(r'^\s*[-—–]{2,}\s*$', re.MULTILINE)
_MD_CODE_BLOCK_RE = re.compile(r'```.*?```', re.DOTALL)
_MD_INLINE_CODE_RE = re.compile(r'`([^`]+)`')
_EXTRA_NEWLINES_RE = re.compile(r'\n{3,}')
_WRAPPING_QUOTES_RE = re.compile(r'^["“](.*)["”]$', re.DOTALL)

_PERSPECTIVE_RE = re.compile(r'\b(your|their|Your|Their)\b')
_PERSPECTIVE_SWAP = {"your": "their", "their": "your", "Your": "Their", "Their": "Your"}


def clean_narrative_text(text: str) -> str:
    """
    Strip markdown and stray formatting from model output.

    Short insights are shown as plain text, so headers, emphasis markers,
    bullets and code fences are flattened and surrounding quotes dropped.
    """
    if not text:
        return text

    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = _HTML_TAG_RE.sub('', text)

    # Remove invisible characters
    text = "".join(
        ch for ch in text
        if unicodedata.category(ch) != "Cf" or ch == "\n"
    )

    text = _MD_CODE_BLOCK_RE.sub('', text)
    text = _MD_RULE_RE.sub('', text)
    text = _MD_BLOCKQUOTE_RE.sub('', text)
    text = _MD_INLINE_CODE_RE.sub(r'\1', text)
    text = _MD_HEADER_RE.sub(r'\1', text)

    text = _MD_BOLD_ASTERISK_RE.sub(r'\1', text)
    text = _MD_BOLD_UNDERSCORE_RE.sub(r'\1', text)
    text = _MD_ITALIC_ASTERISK_RE.sub(r'\1', text)
    text = _MD_ITALIC_UNDERSCORE_RE.sub(r'\1', text)
    text = _MD_BULLET_RE.sub('· ', text)

    lines = [re.sub(r'[ \t]+', ' ', line).strip() for line in text.split('\n')]
    text = _EXTRA_NEWLINES_RE.sub('\n\n', '\n'.join(lines)).strip()

    match = _WRAPPING_QUOTES_RE.match(text)
    if match:
        text = match.group(1).strip()
    return text


def swap_perspective(text: str) -> str:
    """Swap "your" and "their" so a pair description reads from the other side."""
    if not text:
        return text
    return _PERSPECTIVE_RE.sub(lambda m: _PERSPECTIVE_SWAP[m.group(1)], text)
