"""
Keyword helpers used in place of semantic similarity.
"""

import re
from typing import List

_TOKEN_RE = re.compile(r'\w+', re.UNICODE)

STOPWORDS = frozenset({
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from', 'how', 'in', 'is', 'it', 'of', 'on', 'or',
    'that', 'the', 'this', 'to', 'what', 'with', 'we', 'you', 'your', 'our'
})


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens, in order, duplicates removed."""
    seen = []
    for token in _TOKEN_RE.findall(text.lower()):
        if token not in seen:
            seen.append(token)
    return seen


def keywords(text: str, limit: int = 5, min_length: int = 3) -> List[str]:
    """Leading non-stopword tokens, used to tag derived knowledge."""
    result = [t for t in tokenize(text) if len(t) >= min_length and t not in STOPWORDS]
    return result[:limit]
