"""
Deprecation Markers

Reads `@deprecated` tags out of doc comments and turns marked
declarations into rule set entries.
"""

import re
from typing import List, Optional

from deprecation_detector.parser.nodes import ParsedFile
from deprecation_detector.ruleset.ruleset import RuleSetBuilder


DEPRECATED_TAG = re.compile(r'^@deprecated(?=\s|$)(.*)$')
ANY_TAG = re.compile(r'^@[A-Za-z]')


def doc_lines(doc: str) -> List[str]:
    """Doc comment body lines without the comment delimiters and leading stars."""
    body = doc.strip()
    if body.startswith('/**'):
        body = body[3:]
    if body.endswith('*/'):
        body = body[:-2]
    lines = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith('*'):
            line = line[1:].strip()
        lines.append(line)
    return lines


def deprecation_message(doc: Optional[str]) -> Optional[str]:
    """
    The message of a doc comment's @deprecated tag.

    Returns None when there is no tag and "" for a bare tag. Continuation
    lines run until the next tag or the end of the comment.
    """
    if not doc:
        return None
    lines = doc_lines(doc)
    for index, line in enumerate(lines):
        match = DEPRECATED_TAG.match(line)
        if not match:
            continue
        parts = [match.group(1)]
        for follower in lines[index + 1:]:
            if ANY_TAG.match(follower):
                break
            parts.append(follower)
        return ' '.join(' '.join(parts).split())
    return None


def collect_deprecations(parsed: ParsedFile, builder: RuleSetBuilder) -> int:
    """
    Add every deprecated declaration in parsed to builder.

    Returns the number of entries added.
    """
    added = 0
    for cls in parsed.classes:
        if cls.name.startswith('class@anonymous'):
            continue
        message = deprecation_message(cls.doc)
        if message is not None:
            if cls.is_interface:
                builder.add_interface(cls.name, message)
            else:
                builder.add_class(cls.name, message)
            added += 1
            continue

        for method in cls.methods:
            message = deprecation_message(method.doc)
            if message is not None:
                builder.add_method(cls.name, method.name, message)
                added += 1
    return added
