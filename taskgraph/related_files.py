"""Metadata-only summaries of a task's related files.

File contents are never read here; the summary tells the executing agent which
files matter and where to look.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .models import RelatedFile, RelatedFileType

_PRIORITY = {
    RelatedFileType.TO_MODIFY: 1,
    RelatedFileType.REFERENCE: 2,
    RelatedFileType.DEPENDENCY: 3,
    RelatedFileType.CREATE: 4,
    RelatedFileType.OTHER: 5,
}


def describe_file(file: RelatedFile) -> str:
    lines = [f"File: {file.path}", f"Type: {file.type.value}"]
    if file.description:
        lines.append(f"Description: {file.description}")
    if file.line_start and file.line_end:
        lines.append(f"Line Range: {file.line_start}-{file.line_end}")
    lines.append(f"Open {file.path} directly to view its content")
    return "\n".join(lines) + "\n"


def summarize_related_files(
    related_files: Optional[List[RelatedFile]],
    max_total_length: int = 15000,
) -> Dict[str, str]:
    """Return ``content`` (per-file blocks) and ``summary`` (one line per file).

    Files to modify come first. Output stops once ``max_total_length``
    characters of content have been produced.
    """
    if not related_files:
        return {"content": "", "summary": "No related files"}

    content_parts: List[str] = []
    summary_lines = [f"## Related files ({len(related_files)} total)", ""]
    total_length = 0

    for file in sorted(related_files, key=lambda f: _PRIORITY[f.type]):
        if total_length >= max_total_length:
            summary_lines.append("")
            summary_lines.append("### Context length limit reached, remaining files were not listed")
            break

        info = describe_file(file)
        header = f"\n### {file.type.value}: {file.path}"
        if file.description:
            header += f" - {file.description}"
        if file.line_start and file.line_end:
            header += f" (lines {file.line_start}-{file.line_end})"
        header += "\n\n"

        block = header + "```\n" + info + "\n```\n\n"
        content_parts.append(block)
        suffix = f" - {file.description}" if file.description else ""
        summary_lines.append(f"- **{file.path}**{suffix} ({len(info)} characters)")
        total_length += len(block)

    return {"content": "".join(content_parts), "summary": "\n".join(summary_lines) + "\n"}
