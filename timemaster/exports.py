import io
import logging
from collections import defaultdict

import pandas as pd
from flask import Blueprint, send_file
from fpdf import FPDF
from werkzeug.utils import secure_filename

from .auth import login_required
from .dashboard import all_time_slots
from .db import DAYS, get_db, get_or_404
from .timetable import entry_to_slot, fetch_entry_rows

logger = logging.getLogger(__name__)

exports_bp = Blueprint('exports_bp', __name__, url_prefix='/api/export')

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def format_cell(slot, with_times=False):
    cell = f"{slot['subject_code']} / {slot['teacher_name']} / {slot['room_name']}"
    if with_times:
        return f"{slot['start_time']}-{slot['end_time']} {cell}"
    return cell


def period_labels(time_slots):
    """Row label per period, and the periods whose times differ between days.

    A period only carries its times in the label when every day agrees on
    them; otherwise each cell shows its own slot's times.
    """
    spans = defaultdict(set)
    for s in time_slots:
        spans[s['period']].add((s['start_time'], s['end_time']))
    labels, varying = {}, set()
    for period, times in spans.items():
        if len(times) == 1:
            (start, end), = times
            labels[period] = f"P{period} ({start}-{end})"
        else:
            labels[period] = f"P{period}"
            varying.add(period)
    return labels, varying


def build_grid(db, class_id):
    """Weekly grid for one class: one row per period, one column per day."""
    time_slots = all_time_slots(db)
    labels, varying = period_labels(time_slots)
    periods = sorted(labels)
    days = [d for d in DAYS if any(s['day'] == d for s in time_slots)]

    slots = [entry_to_slot(r) for r in fetch_entry_rows(db, [('e.class_id = ?', class_id)])]
    if slots:
        frame = pd.DataFrame(slots)
        frame['cell'] = frame.apply(lambda s: format_cell(s, with_times=s['period'] in varying), axis=1)
        grid = frame.pivot(index='period', columns='day', values='cell')
        grid = grid.reindex(index=periods, columns=days).fillna('')
    else:
        grid = pd.DataFrame('', index=periods, columns=days)

    grid.index = [labels[p] for p in grid.index]
    grid.index.name = 'Period'
    return grid


def latin1(text):
    # Core PDF fonts only cover latin-1.
    return str(text).encode('latin-1', 'replace').decode('latin-1')


def render_pdf(title, grid):
    pdf = FPDF(orientation='L')
    pdf.add_page()
    pdf.set_font('Helvetica', 'B', 14)
    pdf.cell(0, 10, latin1(title))
    pdf.ln(12)

    pdf.set_font('Helvetica', size=8)
    with pdf.table(line_height=5) as table:
        header = table.row()
        header.cell('Period')
        for day in grid.columns:
            header.cell(day.title())
        for label, values in grid.iterrows():
            row = table.row()
            row.cell(latin1(label))
            for value in values:
                row.cell(latin1(value))
    return bytes(pdf.output())


@exports_bp.route('/excel/<int:class_id>')
@login_required
def export_timetable_excel(class_id):
    db = get_db()
    cls = get_or_404(db, 'classes', 'class_id', class_id, 'Class')
    grid = build_grid(db, class_id)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        grid.to_excel(writer, sheet_name='Timetable')
    buffer.seek(0)

    logger.info(f"Exported Excel timetable for class {cls['name']}")
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"{secure_filename(cls['name']) or 'class'}_timetable.xlsx",
    )


@exports_bp.route('/pdf/<int:class_id>')
@login_required
def export_timetable_pdf(class_id):
    db = get_db()
    cls = get_or_404(db, 'classes', 'class_id', class_id, 'Class')
    grid = build_grid(db, class_id)

    data = render_pdf(f"Timetable: {cls['name']}", grid)
    logger.info(f"Exported PDF timetable for class {cls['name']}")
    return send_file(
        io.BytesIO(data),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"{secure_filename(cls['name']) or 'class'}_timetable.pdf",
    )
