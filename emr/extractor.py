"""
Structured field extraction from nurse dictation transcripts.
"""

import json
import re
from typing import Any, Dict

from langchain_core.messages import HumanMessage, SystemMessage

from emr.config import MAX_TRANSCRIPT_CHARS

FIELD_GUIDE = """\
Vital Signs:
  - temperature: an object with "value" (string) and "unit" (string, e.g. "C" or "F")
  - bloodPressure: an object with "systolic" (string), "diastolic" (string), and "unit" (should be "mmHg")
  - heartRate: string representing pulse rate in bpm
  - respiratoryRate: string representing breaths per minute
  - oxygenSaturation: string representing oxygen saturation as a percentage

Subjective:
  - chiefComplaint: string describing the patient's primary complaint
  - symptomHistory: string detailing the onset, duration, and progression of symptoms
  - painLevel: string representing pain level from 0 to 10

Objective:
  - generalAppearance: string describing the patient's overall appearance
  - cardiovascular: string with cardiovascular exam findings
  - respiratory: string with respiratory exam findings
  - neurological: string with neurological exam findings
  - skin: string describing the skin exam
  - additionalExam: string for any extra exam findings

Assessment & Plan:
  - assessment: string summarizing the nurse's clinical assessment
  - plan: string outlining the management or treatment plan
"""


def empty_fields() -> Dict[str, Any]:
    """The full field template with every value blank."""
    return {
        "vitalSigns": {
            "temperature": {"value": "", "unit": ""},
            "bloodPressure": {"systolic": "", "diastolic": "", "unit": "mmHg"},
            "heartRate": "",
            "respiratoryRate": "",
            "oxygenSaturation": "",
        },
        "subjective": {
            "chiefComplaint": "",
            "symptomHistory": "",
            "painLevel": "",
        },
        "objective": {
            "generalAppearance": "",
            "cardiovascular": "",
            "respiratory": "",
            "neurological": "",
            "skin": "",
            "additionalExam": "",
        },
        "assessment": "",
        "plan": "",
    }


def _as_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _fill(template: Dict[str, Any], data: Any) -> Dict[str, Any]:
    """Copy values from *data* into *template*, keeping only known keys."""
    if not isinstance(data, dict):
        return template
    for key, default in template.items():
        if key not in data:
            continue
        if isinstance(default, dict):
            template[key] = _fill(default, data[key])
        elif data[key] not in (None, ""):
            template[key] = _as_text(data[key])
    return template


def normalize_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return _fill(empty_fields(), data)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    match = re.match(r"(?s)^```[a-zA-Z]*\s*(.*?)\s*```$", text)
    return match.group(1).strip() if match else text


def extract_fields(llm, transcript: str) -> Dict[str, Any]:
    """Ask the LLM to turn a transcript into entry fields."""
    transcript = (transcript or "").strip()
    if not transcript:
        raise ValueError("Transcript is required.")
    if len(transcript) > MAX_TRANSCRIPT_CHARS:
        transcript = transcript[:MAX_TRANSCRIPT_CHARS]

    system = SystemMessage(
        content=(
            "You extract structured charting data from a nurse's spoken notes.\n"
            "Return exactly ONE JSON object with the keys vitalSigns, subjective, "
            "objective, assessment and plan, shaped as follows:\n\n"
            f"{FIELD_GUIDE}\n"
            "If any field is not mentioned in the transcript, return it as an empty string.\n"
            "Do not invent measurements. Return ONLY the JSON, with no explanation and no markdown."
        )
    )
    human = HumanMessage(content=f"Transcript:\n<transcript>\n{transcript}\n</transcript>")

    resp = llm.invoke([system, human])
    raw = strip_code_fences(resp.content)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ValueError(f"LLM returned non-JSON output: {raw[:160]}...")
    if not isinstance(data, dict):
        raise ValueError("LLM returned JSON that is not an object.")

    return normalize_fields(data)
