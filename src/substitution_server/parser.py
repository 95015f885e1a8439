import json
import logging
import subprocess
import tempfile
import time
import uuid
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pdfplumber
from dateutil import tz

from substitution_server.config import get_settings
from substitution_server.dto.models import (
    BLOCK_COUNT,
    LESSON_GROUPS,
    SubstitutionColumn,
    SubstitutionSchedule,
)
from substitution_server.errors import (
    DateNotFound,
    DateParseError,
    ExtractionToolError,
    MalformedTable,
    PdfReadError,
)

logger = logging.getLogger(__name__)

DATE_LABEL = "Datum: "
# First cell of the row that closes a lesson block group
BLOCK_SEPARATOR = "-"

# table -> rows -> cell texts
Table = List[List[str]]


def _cell_text(cell: Optional[str]) -> str:
    return cell or ""


def table_to_substitutions(table: Sequence[Sequence[Optional[str]]]) -> Dict[str, SubstitutionColumn]:
    """
    Grabs the classes and their substitutions from one table.

    Row 0 holds the class names (cell 0 is a label). The following rows form
    LESSON_GROUPS groups, each closed by a row whose first cell starts with
    BLOCK_SEPARATOR. Every non-empty cell of a group is appended to the block of
    its class, several rows of one group are joined with a newline.
    """
    if not table or not table[0]:
        raise MalformedTable("table has no header row")

    classes = [_cell_text(cell) for cell in table[0][1:]]
    if not classes:
        raise MalformedTable("header row declares no classes")

    blocks: Dict[str, List[Optional[str]]] = {name: [None] * BLOCK_COUNT for name in classes}

    row = 1
    for lesson_idx in range(LESSON_GROUPS):
        while True:
            if row >= len(table):
                raise MalformedTable(f"table ended inside lesson block {lesson_idx}")

            cells = table[row]
            if len(cells) - 1 != len(classes):
                raise MalformedTable(
                    f"row {row} has {max(len(cells) - 1, 0)} class cells, header declares {len(classes)}"
                )

            for class_name, cell in zip(classes, cells[1:]):
                text = _cell_text(cell)
                if not text:
                    continue
                current = blocks[class_name][lesson_idx]
                blocks[class_name][lesson_idx] = text if current is None else f"{current}\n{text}"

            if _cell_text(cells[0]).startswith(BLOCK_SEPARATOR):
                break
            row += 1

        row += 1

    return {name: SubstitutionColumn.from_blocks(column) for name, column in blocks.items()}


def build_schedule(tables: Sequence[Table], issue_date: int, now: Optional[int] = None) -> SubstitutionSchedule:
    """
    Merges all tables into one schedule; a class seen again overwrites the
    earlier one. `now` pins the build time (epoch ms), the clock is used otherwise.
    """
    entries: Dict[str, SubstitutionColumn] = {}
    for table in tables:
        entries.update(table_to_substitutions(table))

    return SubstitutionSchedule(
        pdf_issue_date=issue_date,
        entries=entries,
        struct_time=now if now is not None else int(time.time() * 1000),
    )


def parse_issue_date(text: str, zone: Optional[tzinfo] = None) -> int:
    """
    Finds the line "Datum: <weekday>, DD.MM.YYYY" and returns that day's
    midnight in `zone` (UTC by default) as epoch milliseconds.
    """
    start = text.find(DATE_LABEL)
    if start == -1:
        raise DateNotFound("date not found")

    # The date line may be the last line of the text
    end = text.find("\n", start)
    if end == -1:
        end = len(text)

    segment = text[start + len(DATE_LABEL):end].split(",")[-1].strip()
    parts = segment.split(".")
    if len(parts) != 3:
        raise DateParseError(f"malformed date {segment!r}")

    try:
        day, month, year = (int(part) for part in parts)
        issued = datetime(year, month, day, tzinfo=zone or tz.UTC)
    except ValueError as exc:
        raise DateParseError(f"malformed date {segment!r}") from exc

    return int(issued.timestamp()) * 1000


def parse_tabula_json(content: str) -> List[Table]:
    """Extracts the text of every cell from the JSON that tabula prints."""
    try:
        document = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ExtractionToolError(f"tabula output is not JSON: {exc}") from exc

    if not isinstance(document, list):
        raise ExtractionToolError("Json malformed")

    tables: List[Table] = []
    for entry in document:
        if not isinstance(entry, dict):
            raise ExtractionToolError("Json malformed")
        data = entry.get("data")
        if not isinstance(data, list):
            raise ExtractionToolError("Json data field missing")

        rows: Table = []
        for row in data:
            if not isinstance(row, list):
                raise ExtractionToolError("Json row malformed")
            try:
                rows.append([str(cell["text"]) for cell in row])
            except (TypeError, KeyError) as exc:
                raise ExtractionToolError("Json cell has no text") from exc
        tables.append(rows)

    return tables


def extract_pdf_text(path: Path) -> str:
    """Text of all pages, every page terminated by a newline."""
    try:
        with pdfplumber.open(path) as pdf:
            return "".join(f"{page.extract_text() or ''}\n" for page in pdf.pages)
    except Exception as exc:
        raise PdfReadError(f"There was an error while reading the PDF file: {exc}") from exc


def run_tabula(path: Path) -> List[Table]:
    settings = get_settings()
    cmd = [
        settings.JAVA_BIN, "-jar", settings.TABULA_JAR,
        "-g", "-f", "JSON", "-p", "all",
        str(path),
    ]

    logger.debug("Calling tabula")
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=settings.EXTRACTION_TIMEOUT)
    except subprocess.TimeoutExpired as exc:
        raise ExtractionToolError(f"tabula timed out after {settings.EXTRACTION_TIMEOUT}s") from exc
    except OSError as exc:
        raise ExtractionToolError(f"could not start tabula: {exc}") from exc

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise ExtractionToolError(f"tabula exited with {result.returncode}: {stderr[-500:]}")

    try:
        output = result.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ExtractionToolError("tabula output is not UTF-8") from exc

    logger.debug("Parsing tabulas json")
    return parse_tabula_json(output)


def schedule_from_pdf(
        pdf: bytes,
        text_extractor: Callable[[Path], str] = extract_pdf_text,
        table_extractor: Callable[[Path], List[Table]] = run_tabula,
) -> SubstitutionSchedule:
    """
    Builds a schedule from the raw bytes of a substitution PDF.
    The document is written to a temp dir that is removed before returning.
    """
    settings = get_settings()
    temp_root = Path(settings.TEMP_ROOT_DIR)
    temp_root.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(dir=temp_root) as temp_dir:
        pdf_path = Path(temp_dir) / f"{uuid.uuid4().hex}.pdf"
        pdf_path.write_bytes(pdf)
        logger.debug(f"Wrote pdf to {pdf_path}")

        text = text_extractor(pdf_path)
        issue_date = parse_issue_date(text, tz.gettz(settings.ISSUE_DATE_TIMEZONE))
        tables = table_extractor(pdf_path)

    schedule = build_schedule(tables, issue_date)
    logger.debug(f"Extracted {len(schedule.entries)} classes from {len(tables)} tables")
    return schedule
