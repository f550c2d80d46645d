"""
Debug overlay tool for visual QA of statement parsing.

Shows every source line next to what the segmenter and parser made of it.
"""
import io
import re
from pathlib import Path
from typing import Dict, List, Optional
import logging

from rich.console import Console
from rich.table import Table

from ..core.anchors import compact_anchors, find_anchor_line, line_matches_anchor, split_lines
from ..core.detectors import TemplateDetector
from ..core.registry import UNKNOWN_TEMPLATE, TemplateNotFoundError
from ..core.segment import segment_transaction_section
from ..core.tables import parse_transactions

logger = logging.getLogger(__name__)

LINE_STYLES = {
    "before_header": "dim",
    "header": "bold red",
    "removed": "yellow",
    "stop": "bold red",
    "after_stop": "dim",
    "row": "green",
    "continuation": "cyan",
    "body": "white",
}


class LineAnnotation:
    """How one raw line was classified."""
    def __init__(self, line_number: int, text: str, kind: str, detail: str = ""):
        self.line_number = line_number
        self.text = text
        self.kind = kind
        self.detail = detail

    def __repr__(self):
        return f"LineAnnotation({self.line_number}, '{self.kind}')"


class DebugOverlay:
    """Annotates statement text with segmentation and parsing decisions."""

    def __init__(self, text: str, template_id: Optional[str] = None):
        self.text = text or ''
        detector = TemplateDetector()
        template_id = template_id or detector.detect_template(self.text)
        if template_id == UNKNOWN_TEMPLATE:
            raise TemplateNotFoundError("Cannot build overlay: template is unknown")
        self.template = detector.registry.get(template_id)

    def annotate(self) -> List[LineAnnotation]:
        """
        Classify each raw line.

        Returns:
            One LineAnnotation per raw line, in order
        """
        lines = split_lines(self.text)
        template = self.template
        header_anchors = compact_anchors(template.header_anchors)
        stop_anchors = compact_anchors(template.segment.stop_anchors)
        remove_patterns = [re.compile(p, re.IGNORECASE) for p in template.segment.remove_line_patterns]

        header = find_anchor_line(lines, template.header_anchors)
        start = header.line_index + 1 if header and template.segment.start_after_header else 0

        annotations: List[LineAnnotation] = []
        kept: List[int] = []
        stopped = False
        for i, line in enumerate(lines):
            if header and i == header.line_index:
                annotations.append(LineAnnotation(i + 1, line, "header", header.target))
                continue
            if i < start:
                annotations.append(LineAnnotation(i + 1, line, "before_header"))
                continue
            if stopped:
                annotations.append(LineAnnotation(i + 1, line, "after_stop"))
                continue

            stop = line_matches_anchor(line, stop_anchors)
            if stop:
                stopped = True
                annotations.append(LineAnnotation(i + 1, line, "stop", stop))
                continue
            if line_matches_anchor(line, header_anchors):
                annotations.append(LineAnnotation(i + 1, line, "removed", "repeated header"))
                continue
            pattern = next((p.pattern for p in remove_patterns if p.search(line)), None)
            if pattern:
                annotations.append(LineAnnotation(i + 1, line, "removed", pattern))
                continue

            annotations.append(LineAnnotation(i + 1, line, "body"))
            kept.append(len(annotations) - 1)

        self._mark_rows(annotations, kept)
        return annotations

    def _mark_rows(self, annotations: List[LineAnnotation], kept: List[int]):
        # The section text is stripped, so leading blank kept lines shift indices
        offset = 0
        for index in kept:
            if annotations[index].text.strip():
                break
            offset += 1

        section = segment_transaction_section(self.text, self.template)
        parsed = parse_transactions(section.section_text, self.template, full_text=self.text)

        rows_by_line: Dict[int, str] = {}
        for tx in parsed.transactions:
            rows_by_line[tx.source.line_index] = f"row {tx.source.row_index}: {tx.date} {tx.amount} bal={tx.balance}"

        in_block = False
        for position, index in enumerate(kept[offset:], 1):
            annotation = annotations[index]
            if position in rows_by_line:
                annotation.kind = "row"
                annotation.detail = rows_by_line[position]
                in_block = True
            elif in_block and annotation.text.strip():
                annotation.kind = "continuation"

    def render(self, console: Console):
        table = Table(title=f"{self.template.id} overlay", show_lines=False)
        table.add_column("#", justify="right")
        table.add_column("Kind")
        table.add_column("Line")
        table.add_column("Detail")

        for annotation in self.annotate():
            style = LINE_STYLES.get(annotation.kind, "white")
            table.add_row(str(annotation.line_number), annotation.kind, annotation.text, annotation.detail, style=style)

        console.print(table)

    def create_overlay(self, output_path: Path):
        """
        Write the overlay as plain text.

        Args:
            output_path: File to write
        """
        console = Console(record=True, width=200, file=io.StringIO())
        self.render(console)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(console.export_text(), encoding='utf-8')
        logger.info(f"Created overlay: {output_path}")


def create_debug_overlay(text: str, template_id: Optional[str], output_path: Path):
    """
    Create a debug overlay file for statement text.

    Args:
        text: Extracted statement text
        template_id: Template ID to use, detected when None
        output_path: File to write
    """
    overlay = DebugOverlay(text, template_id)
    overlay.create_overlay(output_path)
