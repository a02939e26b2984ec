import csv
import io
from typing import List
from fpdf import FPDF

CSV_HEADERS = ['Date', 'Activity Type', 'Crop', 'Notes', 'Inputs Used', 'Yield Estimate', 'AI Summary']

def _row(activity) -> list:
    activity_type = getattr(activity.activity_type, "value", activity.activity_type)
    return [
        activity.activity_date.isoformat() if activity.activity_date else "",
        activity_type,
        activity.crop or "",
        activity.notes or "",
        activity.inputs_used or "",
        activity.yield_estimate or "",
        activity.ai_summary or "",
    ]

def activities_to_csv(activities: List, farmer_names: dict = None) -> str:
    """
    One row per activity. With `farmer_names` a leading Farmer column is added.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    headers = list(CSV_HEADERS)
    if farmer_names is not None:
        headers.insert(0, 'Farmer')
    writer.writerow(headers)
    for activity in activities:
        row = _row(activity)
        if farmer_names is not None:
            row.insert(0, farmer_names.get(activity.user_id, 'Unknown'))
        writer.writerow(row)
    return buffer.getvalue()

def _latin1(text: str) -> str:
    # Core PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")

class RecordsPDF(FPDF):
    def __init__(self, title: str):
        super().__init__()
        self.report_title = title

    def header(self):
        self.set_font('Helvetica', 'B', 15)
        self.cell(0, 10, _latin1(self.report_title), border=0, new_x="LMARGIN", new_y="NEXT", align='C')
        self.ln(5)

def activities_to_pdf(activities: List, title: str = "Farm Records", farmer_names: dict = None) -> bytes:
    """
    Renders activities as a simple PDF report, one block per activity.
    """
    pdf = RecordsPDF(title)
    pdf.add_page()
    pdf.set_font("Helvetica", size=11)

    if not activities:
        pdf.cell(0, 10, "No activities recorded.", new_x="LMARGIN", new_y="NEXT")

    for activity in activities:
        date, activity_type, crop, notes, inputs, yield_estimate, summary = _row(activity)
        heading = f"{date[:10]}  {activity_type}"
        if crop:
            heading += f" - {crop}"
        if farmer_names is not None:
            heading = f"{farmer_names.get(activity.user_id, 'Unknown')}: {heading}"

        pdf.set_font("Helvetica", 'B', 12)
        pdf.multi_cell(0, 8, _latin1(heading), new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", size=11)
        for label, value in (("Notes", notes), ("Inputs used", inputs),
                             ("Yield estimate", yield_estimate), ("Summary", summary)):
            if value:
                pdf.multi_cell(0, 6, _latin1(f"{label}: {value}"), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    return bytes(pdf.output())
