import logging
from .llm_client import generate_text, extract_json, LLMUnavailable

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an agricultural AI assistant. Respond only with valid JSON."
DEFAULT_SUMMARY = "Activity recorded successfully."

def build_prompt(context: dict) -> str:
    return f"""You are an AI assistant helping farmers document their agricultural activities. Based on the following farm activity context, generate:
1. A concise summary (2-3 sentences) describing the activity
2. Extracted structured data

Context:
- Activity Type: {context.get('activityType')}
- Crop: {context.get('crop') or 'Not specified'}
- Notes: {context.get('notes') or 'None'}
- Additional Notes: {context.get('textNotes') or 'None'}
- Inputs Used: {context.get('inputsUsed') or 'None'}
- Photos attached: {context.get('photoCount') or 0}
- Audio notes: {context.get('audioCount') or 0}

Respond with a JSON object containing:
- summary: string (the activity summary)
- extractedData: object with fields like crop, activityType, inputsUsed, estimatedImpact"""

def template_summary(context: dict) -> str:
    return f"{context.get('activityType')} activity recorded for {context.get('crop') or 'crops'}. {context.get('notes') or ''}"

def process_farm_activity(context: dict) -> dict:
    """
    Summarizes one activity context into {"summary", "extractedData"}.

    Never raises: provider failures give the default summary plus an
    "error" key, unparseable replies give a templated summary.
    """
    try:
        content = generate_text(build_prompt(context), system=SYSTEM_PROMPT, is_json=True)
    except LLMUnavailable as e:
        logger.warning("Activity processing skipped: %s", e)
        return {"summary": DEFAULT_SUMMARY, "extractedData": {}, "error": str(e)}

    parsed = extract_json(content)
    if not isinstance(parsed, dict):
        return {"summary": template_summary(context).strip(), "extractedData": {}}

    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = DEFAULT_SUMMARY
    extracted = parsed.get("extractedData")
    return {
        "summary": summary.strip(),
        "extractedData": extracted if isinstance(extracted, dict) else {},
    }

def context_from_activity(data: dict) -> dict:
    """
    Maps stored/draft activity fields onto the camelCase context the prompt reads.
    """
    activity_type = data.get("activity_type")
    return {
        "activityType": getattr(activity_type, "value", activity_type),
        "crop": data.get("crop"),
        "notes": data.get("notes"),
        "textNotes": data.get("text_notes"),
        "inputsUsed": data.get("inputs_used"),
        "photoCount": data.get("photo_count", 0),
        "audioCount": data.get("audio_count", 0),
    }
