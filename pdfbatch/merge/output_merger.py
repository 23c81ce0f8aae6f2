"""Renders completed batch files into one merged document."""

import html
import re
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from pdfbatch.batch.states import MergeFormat
from pdfbatch.logging.logger import Log
from pdfbatch.merge.models import Artifact, MergeEntry, MergeJobInfo

NO_TEXT_PLACEHOLDER = "[No text extracted]"

_RICH_STYLESHEET = """
        body { font-family: Arial, sans-serif; line-height: 1.6; margin: 2cm; }
        h1 { color: #2563eb; border-bottom: 2px solid #2563eb; }
        h2 { color: #1e40af; border-bottom: 1px solid #e5e7eb; }
        .file-section { margin-bottom: 2em; }
        .metadata { background: #f3f4f6; padding: 1em; margin-bottom: 1em; }
        table { border-collapse: collapse; width: 100%; margin: 1em 0; }
        th, td { border: 1px solid #d1d5db; padding: 8px; text-align: left; }
        th { background-color: #f9fafb; }
        .math-content { background: #fef3c7; padding: 0.5em; margin: 0.5em 0; font-family: monospace; }
        .page-break { page-break-before: always; }
"""


def _slug(filename: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", filename).lower()


def _safe_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", name) or "batch"


def _size_kb(size: int) -> str:
    return f"{size / 1024:.1f} KB"


def _text(entry: MergeEntry) -> str:
    return entry.text if entry.text.strip() else NO_TEXT_PLACEHOLDER


def _md_cell(value: Any) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


class OutputMerger:
    """Concatenates per-file results into plain, structured or rich output.

    Rendering is a pure function of its inputs; the only clock read happens
    in write_artifact, and only for the file name.
    """

    def __init__(self, output_root: Path) -> None:
        self._output_root = output_root

    def render(
        self, fmt: MergeFormat, job: MergeJobInfo, entries: list[MergeEntry]
    ) -> str:
        if fmt is MergeFormat.PLAIN:
            return self._render_plain(job, entries)
        if fmt is MergeFormat.STRUCTURED:
            return self._render_structured(job, entries)
        return self._render_rich(job, entries)

    def write_artifact(
        self,
        job_id: UUID,
        job_name: str,
        fmt: MergeFormat,
        content: str,
        now: datetime,
    ) -> Artifact:
        """Write rendered content to output_root/<job_id>/ and report its size."""
        timestamp = now.strftime("%Y-%m-%dT%H-%M-%S-%f")
        file_name = f"batch_{_safe_name(job_name)}_{timestamp}.{fmt.extension}"
        directory = self._output_root / str(job_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / file_name
        data = content.encode("utf-8")
        path.write_bytes(data)
        Log.info(f"Wrote merged output {path} ({len(data)} bytes)")
        return Artifact(path=path, file_name=file_name, size=len(data))

    def _render_plain(self, job: MergeJobInfo, entries: list[MergeEntry]) -> str:
        rule = "=" * 80
        parts = [
            f"# Batch Processing Results: {job.name}\n",
            f"Total Files: {len(entries)}\n",
            f"Total Pages: {sum(e.pages for e in entries)}\n",
            f"\n{rule}\n\n",
        ]
        for index, entry in enumerate(entries, start=1):
            parts.append(f"## File {index}: {entry.filename}\n")
            parts.append(f"Pages: {entry.pages}\n")
            parts.append(f"\n{'-' * 40}\n\n")
            parts.append(_text(entry))
            parts.append(f"\n\n{rule}\n\n")
        return "".join(parts)

    def _render_structured(self, job: MergeJobInfo, entries: list[MergeEntry]) -> str:
        lines = [
            f"# Batch Processing Results: {job.name}",
            "",
            f"**Description:** {job.description or 'No description provided'}",
            f"**Total Files:** {len(entries)}",
            f"**Total Pages:** {sum(e.pages for e in entries)}",
            "",
            "## Table of Contents",
            "",
        ]
        for index, entry in enumerate(entries, start=1):
            lines.append(f"{index}. [{entry.filename}](#file-{index}-{_slug(entry.filename)})")
        lines += ["", "---", ""]

        for index, entry in enumerate(entries, start=1):
            lines += [
                f'<a id="file-{index}-{_slug(entry.filename)}"></a>',
                f"## File {index}: {entry.filename}",
                "",
                f"**Pages:** {entry.pages}",
                f"**File Size:** {_size_kb(entry.file_size)}",
                "",
                "### Extracted Text",
                "",
                _text(entry),
                "",
            ]
            if entry.tables:
                lines += ["### Tables", ""]
                for t_index, table in enumerate(entry.tables, start=1):
                    lines += [f"#### Table {t_index}", ""]
                    lines += self._markdown_table(table)
                    lines.append("")
            if entry.math_fragments:
                lines += ["### Mathematical Content", ""]
                for m_index, fragment in enumerate(entry.math_fragments, start=1):
                    kind = str(fragment.get("kind") or "expression").capitalize()
                    lines += [f"**{kind} {m_index}:** `{fragment.get('content', '')}`", ""]
            lines += ["---", ""]
        return "\n".join(lines)

    def _markdown_table(self, table: dict[str, Any]) -> list[str]:
        headers = [_md_cell(h) for h in table.get("headers") or []]
        if not headers:
            return []
        rows = table.get("rows") or []
        lines = [
            f"| {' | '.join(headers)} |",
            f"| {' | '.join('---' for _ in headers)} |",
        ]
        for row in rows:
            cells = [_md_cell(c) for c in row]
            cells += [""] * (len(headers) - len(cells))
            lines.append(f"| {' | '.join(cells)} |")
        return lines

    def _render_rich(self, job: MergeJobInfo, entries: list[MergeEntry]) -> str:
        esc = html.escape
        description = job.description or "No description provided"
        parts = [
            "<!DOCTYPE html>\n<html>\n<head>\n",
            '    <meta charset="UTF-8">\n',
            f"    <title>Batch Processing Results: {esc(job.name)}</title>\n",
            f"    <style>{_RICH_STYLESHEET}    </style>\n",
            "</head>\n<body>\n",
            f"<h1>Batch Processing Results: {esc(job.name)}</h1>\n",
            '<div class="metadata">\n',
            f"<p><strong>Description:</strong> {esc(description)}</p>\n",
            f"<p><strong>Total Files:</strong> {len(entries)}</p>\n",
            f"<p><strong>Total Pages:</strong> {sum(e.pages for e in entries)}</p>\n",
            "</div>\n",
        ]
        for index, entry in enumerate(entries, start=1):
            if index > 1:
                parts.append('<div class="page-break"></div>\n')
            parts.append('<div class="file-section">\n')
            parts.append(f"<h2>File {index}: {esc(entry.filename)}</h2>\n")
            parts.append('<div class="metadata">\n')
            parts.append(f"<p><strong>Pages:</strong> {entry.pages}</p>\n")
            parts.append(f"<p><strong>File Size:</strong> {_size_kb(entry.file_size)}</p>\n")
            parts.append("</div>\n")
            parts.append("<h3>Extracted Text</h3>\n")
            parts.append(f"<div>{esc(_text(entry)).replace(chr(10), '<br>')}</div>\n")
            if entry.tables:
                parts.append("<h3>Tables</h3>\n")
                for t_index, table in enumerate(entry.tables, start=1):
                    parts.append(f"<h4>Table {t_index}</h4>\n")
                    parts.append(self._html_table(table))
            if entry.math_fragments:
                parts.append("<h3>Mathematical Content</h3>\n")
                for m_index, fragment in enumerate(entry.math_fragments, start=1):
                    kind = str(fragment.get("kind") or "expression").capitalize()
                    parts.append(
                        f'<div class="math-content"><strong>{esc(kind)} {m_index}:</strong> '
                        f"{esc(str(fragment.get('content', '')))}</div>\n"
                    )
            parts.append("</div>\n")
        parts.append("</body>\n</html>\n")
        return "".join(parts)

    def _html_table(self, table: dict[str, Any]) -> str:
        headers = table.get("headers") or []
        if not headers:
            return ""
        head = "".join(f"<th>{html.escape(str(h))}</th>" for h in headers)
        body = "".join(
            "<tr>" + "".join(f"<td>{html.escape(str(c))}</td>" for c in row) + "</tr>"
            for row in table.get("rows") or []
        )
        return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>\n"
