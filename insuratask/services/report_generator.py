"""PDF (fpdf2) and Excel (openpyxl) task reports, labelled in Italian"""

import io
from datetime import datetime
from typing import Any, Dict, List, Optional

from fpdf import FPDF
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font, PatternFill

from insuratask.models.task import Task, TASK_CATEGORIES, PRIORITY_LEVELS, STATUS_TYPES

BRAND_GREEN = (34, 197, 94)

TASK_COLUMNS = ["Titolo", "Categoria", "Priorità", "Stato", "Scadenza", "Cliente"]


def sanitize_text_for_pdf(text: str) -> str:
    """
    Replace characters the core PDF fonts cannot encode with latin-1 friendly ones.
    """
    replacements = {
        '\u2019': "'",  # Right single quotation mark
        '\u2018': "'",  # Left single quotation mark
        '\u201c': '"',  # Left double quotation mark
        '\u201d': '"',  # Right double quotation mark
        '\u2013': '-',  # En dash
        '\u2014': '-',  # Em dash
        '\u2026': '...',  # Horizontal ellipsis
        '\u2022': '*',  # Bullet
        '\u20ac': 'EUR',  # Euro sign
        '\u00a0': ' ',  # Non-breaking space
    }
    for unicode_char, replacement in replacements.items():
        text = text.replace(unicode_char, replacement)

    try:
        text.encode('latin-1')
        return text
    except UnicodeEncodeError:
        return text.encode('latin-1', errors='replace').decode('latin-1')


def category_label(category: str) -> str:
    return TASK_CATEGORIES.get(category, category)


def priority_label(priority: str) -> str:
    return PRIORITY_LEVELS.get(priority, priority)


def status_label(status: str) -> str:
    return STATUS_TYPES.get(status, status)


def format_due(due_date: Optional[str]) -> str:
    if not due_date:
        return "-"
    return datetime.strptime(due_date, "%Y-%m-%d").strftime("%d/%m/%Y")


def _task_row(task: Task) -> List[str]:
    return [
        task.title,
        category_label(task.category),
        priority_label(task.priority),
        status_label(task.status),
        format_due(task.due_date),
        task.client or "N/A",
    ]


def generate_pdf(data: Dict[str, Any]) -> bytes:
    """
    data: tasks, stats, title, generated_at, include_stats
    """
    tasks: List[Task] = data.get("tasks") or []
    stats = data.get("stats")
    generated_at: datetime = data.get("generated_at") or datetime.now()

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 20)
    pdf.set_text_color(*BRAND_GREEN)
    pdf.cell(0, 10, "InsuraTask", new_x="LMARGIN", new_y="NEXT")

    pdf.set_font("Helvetica", "B", 16)
    pdf.set_text_color(0, 0, 0)
    pdf.cell(0, 10, sanitize_text_for_pdf(data.get("title") or "Report Attività"), new_x="LMARGIN", new_y="NEXT")

    pdf.set_font("Helvetica", "", 10)
    pdf.set_text_color(100, 100, 100)
    pdf.cell(0, 8, f"Generato il: {generated_at.strftime('%d/%m/%Y %H:%M')}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(5)
    pdf.set_text_color(0, 0, 0)

    if stats and data.get("include_stats", True):
        pdf.set_font("Helvetica", "B", 14)
        pdf.cell(0, 10, "Statistiche Generali", new_x="LMARGIN", new_y="NEXT")
        rows = [
            ("Totale Attività", str(stats["total_tasks"])),
            ("Completate", str(stats["completed_tasks"])),
            ("In Ritardo", str(stats["overdue_tasks"])),
            ("Tasso Completamento", f"{stats['completion_rate']:.1f}%"),
        ]
        _pdf_table(pdf, ["Metrica", "Valore"], rows, [60, 30], font_size=10)
        pdf.ln(8)

    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 10, "Dettaglio Attività", new_x="LMARGIN", new_y="NEXT")
    if tasks:
        _pdf_table(pdf, TASK_COLUMNS, [_task_row(t) for t in tasks], [60, 30, 18, 22, 22, 38], font_size=8)
    else:
        pdf.set_font("Helvetica", "", 10)
        pdf.cell(0, 8, "Nessuna attività corrisponde ai filtri selezionati", new_x="LMARGIN", new_y="NEXT")

    return bytes(pdf.output())


def _pdf_table(pdf: FPDF, headers: List[str], rows, widths: List[int], font_size: int = 9) -> None:
    pdf.set_font("Helvetica", "B", font_size)
    pdf.set_fill_color(*BRAND_GREEN)
    pdf.set_text_color(255, 255, 255)
    for header, width in zip(headers, widths):
        pdf.cell(width, 7, sanitize_text_for_pdf(header), border=1, fill=True)
    pdf.ln()

    pdf.set_font("Helvetica", "", font_size)
    pdf.set_text_color(0, 0, 0)
    for index, row in enumerate(rows):
        striped = index % 2 == 1
        if striped:
            pdf.set_fill_color(240, 240, 240)
        for value, width in zip(row, widths):
            text = sanitize_text_for_pdf(str(value))
            # Truncate so every row stays on one line
            text = _fit(pdf, text, width - 2)
            pdf.cell(width, 6, text, border=1, fill=striped)
        pdf.ln()


def _fit(pdf: FPDF, text: str, width: float) -> str:
    """Longest prefix of text no wider than width"""
    if pdf.get_string_width(text) <= width:
        return text
    low, high = 0, len(text)
    while low < high:
        middle = (low + high + 1) // 2
        if pdf.get_string_width(text[:middle]) <= width:
            low = middle
        else:
            high = middle - 1
    return text[:low]


def excel_text(value: Optional[str]) -> str:
    return ILLEGAL_CHARACTERS_RE.sub("", value or "")


def generate_excel(data: Dict[str, Any]) -> bytes:
    tasks: List[Task] = data.get("tasks") or []
    stats = data.get("stats")
    generated_at: datetime = data.get("generated_at") or datetime.now()

    workbook = Workbook()
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="22C55E", end_color="22C55E", fill_type="solid")

    stats_sheet = workbook.active
    stats_sheet.title = "Statistiche"
    stats_sheet.append(["Statistiche InsuraTask", ""])
    stats_sheet["A1"].font = Font(bold=True, size=14)
    stats_sheet.append(["Generato il:", generated_at.strftime("%d/%m/%Y %H:%M")])
    if stats and data.get("include_stats", True):
        stats_sheet.append([])
        stats_sheet.append(["Metrica", "Valore"])
        for cell in stats_sheet[stats_sheet.max_row]:
            cell.font = header_font
            cell.fill = header_fill
        stats_sheet.append(["Totale Attività", stats["total_tasks"]])
        stats_sheet.append(["Completate", stats["completed_tasks"]])
        stats_sheet.append(["In Ritardo", stats["overdue_tasks"]])
        stats_sheet.append(["Tasso Completamento", f"{stats['completion_rate']:.1f}%"])
        stats_sheet.append([])
        stats_sheet.append(["Categorie", ""])
        stats_sheet.cell(row=stats_sheet.max_row, column=1).font = header_font
        for category, count in stats["tasks_by_category"].items():
            stats_sheet.append([category_label(category), count])
        stats_sheet.append([])
        stats_sheet.append(["Priorità", ""])
        stats_sheet.cell(row=stats_sheet.max_row, column=1).font = header_font
        for priority, count in stats["tasks_by_priority"].items():
            stats_sheet.append([priority_label(priority), count])
    stats_sheet.column_dimensions["A"].width = 28
    stats_sheet.column_dimensions["B"].width = 20

    tasks_sheet = workbook.create_sheet("Attività")
    tasks_sheet.append(["Titolo", "Descrizione", "Categoria", "Priorità", "Stato", "Scadenza", "Cliente", "Creato"])
    for cell in tasks_sheet[1]:
        cell.font = header_font
        cell.fill = header_fill
    for task in tasks:
        tasks_sheet.append([
            excel_text(task.title),
            excel_text(task.description),
            category_label(task.category),
            priority_label(task.priority),
            status_label(task.status),
            format_due(task.due_date),
            excel_text(task.client),
            task.created_at.strftime("%d/%m/%Y") if task.created_at else "",
        ])
        # user text is never a formula
        for cell in tasks_sheet[tasks_sheet.max_row]:
            if isinstance(cell.value, str):
                cell.data_type = "s"
    for column, width in zip("ABCDEFGH", [40, 50, 20, 12, 14, 12, 25, 12]):
        tasks_sheet.column_dimensions[column].width = width
    tasks_sheet.auto_filter.ref = tasks_sheet.dimensions
    tasks_sheet.freeze_panes = "A2"

    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()
