"""
PDF export of a reviewed patient entry.
"""

from datetime import datetime
from typing import Optional

from fpdf import FPDF


def _safe(s) -> str:
    # Core PDF fonts only cover latin-1.
    text = str(s if s is not None else "").replace("\n", " ")[:200]
    return text.encode("latin-1", "replace").decode("latin-1")


def _format_date(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value).strftime("%B %d, %Y - %H:%M")
    except ValueError:
        return value


def _vital_rows(entry: dict):
    vitals = entry.get("vitalSigns") or {}
    temp = vitals.get("temperature") or {}
    bp = vitals.get("bloodPressure") or {}
    pain = (entry.get("subjective") or {}).get("painLevel", "")

    temperature = f"{temp.get('value', '')} {temp.get('unit', '')}".strip()
    pressure = ""
    if bp.get("systolic") or bp.get("diastolic"):
        pressure = f"{bp.get('systolic', '')}/{bp.get('diastolic', '')} {bp.get('unit') or 'mmHg'}"

    return [
        ("Temperature:", temperature),
        ("Blood Pressure:", pressure),
        ("Heart Rate:", vitals.get("heartRate", "")),
        ("Respiratory Rate:", vitals.get("respiratoryRate", "")),
        ("Oxygen Saturation:", vitals.get("oxygenSaturation", "")),
        ("Pain Level:", pain),
    ]


def export_filename(patient: dict, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{patient['lastName']}_{patient['firstName']}_VitalSigns_{now:%Y%m%d}.pdf"


def render_entry_pdf(patient: dict, entry: dict, now: Optional[datetime] = None) -> bytes:
    """
    Render a one-page health record for a reviewed entry.

    Args:
        patient: Patient record as returned by the store.
        entry: Entry record as returned by the store.
        now: Timestamp printed as the generation date.

    Returns:
        bytes: The PDF document.
    """
    now = now or datetime.now()

    pdf = FPDF(unit="pt", format="A4")
    pdf.set_title("Patient Health Record")
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 20)
    pdf.text(x=190, y=60, text="Patient Health Record")

    pdf.set_font("Helvetica", "B", 14)
    pdf.text(x=50, y=110, text="Patient Information:")
    pdf.set_font("Helvetica", "", 12)
    pdf.text(x=60, y=135, text=f"Name: {_safe(patient['firstName'])} {_safe(patient['lastName'])}")
    pdf.text(x=60, y=155, text=f"Room Number: {_safe(patient['roomNumber'])}")
    pdf.text(x=60, y=175, text=f"Diagnosis: {_safe(patient['diagnosis'])}")

    pdf.set_font("Helvetica", "B", 14)
    pdf.text(x=50, y=215, text="Vital Signs Record:")
    pdf.set_font("Helvetica", "", 12)
    pdf.text(x=60, y=240, text=f"Date: {_safe(_format_date(entry.get('createdAt')))}")

    y = 260
    pdf.set_draw_color(200, 200, 200)
    pdf.line(50, y, 545, y)
    pdf.set_font("Helvetica", "", 11)
    for label, value in _vital_rows(entry):
        y += 22
        pdf.text(x=60, y=y, text=label)
        pdf.text(x=250, y=y, text=_safe(value))
    y += 15
    pdf.line(50, y, 545, y)

    for label in ("assessment", "plan"):
        if entry.get(label):
            y += 25
            pdf.text(x=50, y=y, text=f"{label.capitalize()}: {_safe(entry[label])}")

    y += 40
    pdf.text(x=50, y=y, text="This record has been reviewed and approved.")
    y += 20
    pdf.text(x=50, y=y, text=f"Report generated: {now:%B %d, %Y - %H:%M}")

    out = pdf.output()
    return bytes(out)
