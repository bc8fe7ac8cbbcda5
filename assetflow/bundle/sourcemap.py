"""Line-level source maps (revision 3) for bundled scripts.

Each bundled source line maps to column 0 of its generated line; that is
enough for browser devtools to show the right file and line.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

_BASE64 = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/'


def encode_vlq(value: int) -> str:
    """Encode an integer as a base64 VLQ segment field.

    Examples:
        encode_vlq(0) -> "A"
        encode_vlq(-1) -> "D"
        encode_vlq(16) -> "gB"
    """
    vlq = (value << 1) if value >= 0 else ((-value) << 1) | 1
    encoded = []
    while True:
        digit = vlq & 31
        vlq >>= 5
        if vlq:
            digit |= 32
        encoded.append(_BASE64[digit])
        if not vlq:
            return ''.join(encoded)


@dataclass
class SourceMapBuilder:
    """Collects line mappings and renders a source map dict."""

    file: str
    sources: List[str] = field(default_factory=list)
    contents: List[str] = field(default_factory=list)
    _lines: Dict[int, Tuple[int, int]] = field(default_factory=dict, repr=False)
    """generated line -> (source index, source line), all zero-based."""

    def add_source(self, name: str, content: str, generated_line: int) -> None:
        """Map every line of ``content`` starting at ``generated_line``."""
        index = len(self.sources)
        self.sources.append(name)
        self.contents.append(content)
        for offset in range(content.count('\n') + 1):
            self._lines[generated_line + offset] = (index, offset)

    def mappings(self, line_count: Optional[int] = None) -> str:
        """Render the ``mappings`` field."""
        if line_count is None:
            line_count = max(self._lines) + 1 if self._lines else 0

        prev_source = 0
        prev_line = 0
        rendered = []
        for line in range(line_count):
            mapped = self._lines.get(line)
            if mapped is None:
                rendered.append('')
                continue
            source, source_line = mapped
            rendered.append(
                encode_vlq(0)
                + encode_vlq(source - prev_source)
                + encode_vlq(source_line - prev_line)
                + encode_vlq(0)
            )
            prev_source, prev_line = source, source_line
        return ';'.join(rendered)

    def to_dict(self, line_count: Optional[int] = None) -> dict:
        return {
            'version': 3,
            'file': self.file,
            'sources': list(self.sources),
            'sourcesContent': list(self.contents),
            'names': [],
            'mappings': self.mappings(line_count),
        }

    def to_json(self, line_count: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(line_count))
