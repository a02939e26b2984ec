"""
Linear activity wizard.

A draft sits on one named step at a time. `advance` validates the payload
for the current step, merges it into the draft data and moves one step
forward; entering the preview step runs the AI summary. `back` moves one
step backward and closes the draft when called on the first step.
"""
from datetime import datetime
from typing import Callable, Optional

from .models import ActivityType

FARMER_FLOW = "farmer"
EXTENSION_FLOW = "extension"

FLOWS = {
    FARMER_FLOW: ["type", "details", "evidence", "location", "preview"],
    EXTENSION_FLOW: ["select_farmer", "type", "details", "evidence", "location", "preview"],
}

PREVIEW = "preview"

DETAIL_FIELDS = ("crop", "notes", "inputs_used", "yield_estimate")
COUNT_FIELDS = ("photo_count", "video_count", "audio_count")

class WizardError(ValueError):
    """The payload for the current step is invalid."""

class WizardStateError(Exception):
    """The requested move is not possible from the current step."""

class ActivityWizard:
    def __init__(
        self,
        flow: str,
        step: Optional[str] = None,
        data: Optional[dict] = None,
        is_farmer: Callable[[int], bool] = None,
        owns_field: Callable[[int, int], bool] = None,
        summarize: Callable[[dict, str], dict] = None,
    ):
        if flow not in FLOWS:
            raise WizardError(f"Unknown flow: {flow}")
        self.flow = flow
        self.steps = FLOWS[flow]
        self.step = step or self.steps[0]
        if self.step not in self.steps:
            raise WizardStateError(f"Unknown step: {self.step}")
        self.data = dict(data or {})
        self.is_farmer = is_farmer or (lambda user_id: True)
        self.owns_field = owns_field or (lambda farmer_id, field_id: True)
        self.summarize = summarize
        self.closed = False

    @property
    def index(self) -> int:
        return self.steps.index(self.step)

    @property
    def at_preview(self) -> bool:
        return self.step == PREVIEW

    def advance(self, payload: Optional[dict] = None) -> str:
        if self.closed:
            raise WizardStateError("Draft is closed")
        if self.at_preview:
            raise WizardStateError("Already at preview; save or go back")

        payload = payload or {}
        handler = getattr(self, f"_step_{self.step}", None)
        if handler:
            self.data.update(handler(payload))

        self.step = self.steps[self.index + 1]
        if self.at_preview and self.summarize:
            self.data.update(self.summarize(self.data, self.flow))
        return self.step

    def back(self) -> Optional[str]:
        """Returns the new step, or None once the draft is closed."""
        if self.index == 0:
            self.closed = True
            return None
        self.step = self.steps[self.index - 1]
        return self.step

    def activity_payload(self) -> dict:
        """Fields for ActivityCreate; only valid at preview."""
        if not self.at_preview:
            raise WizardStateError("Finish the wizard before saving")
        keys = ("activity_type", "activity_date", "field_id", "location_lat", "location_lng",
                "text_notes", "ai_summary", "ai_extracted_data") + DETAIL_FIELDS + COUNT_FIELDS
        return {k: self.data[k] for k in keys if self.data.get(k) is not None}

    # Step handlers return the cleaned values to merge into the draft

    def _step_select_farmer(self, payload: dict) -> dict:
        farmer_id = payload.get("farmer_id")
        if not isinstance(farmer_id, int) or not self.is_farmer(farmer_id):
            raise WizardError("Select a registered farmer")
        return {"farmer_id": farmer_id}

    def _step_type(self, payload: dict) -> dict:
        try:
            activity_type = ActivityType(payload.get("activity_type"))
        except ValueError:
            raise WizardError("Choose a valid activity type")
        return {"activity_type": activity_type.value}

    def _step_details(self, payload: dict) -> dict:
        cleaned = {}
        for key in DETAIL_FIELDS:
            value = payload.get(key)
            if value is not None and not isinstance(value, str):
                raise WizardError(f"{key} must be text")
            cleaned[key] = value or None

        field_id = payload.get("field_id")
        if field_id is not None:
            if not isinstance(field_id, int) or not self.owns_field(self.data.get("farmer_id"), field_id):
                raise WizardError("Field does not belong to this farmer")
        cleaned["field_id"] = field_id

        activity_date = payload.get("activity_date")
        if activity_date:
            try:
                datetime.fromisoformat(activity_date)
            except (TypeError, ValueError):
                raise WizardError("activity_date must be an ISO 8601 date")
        cleaned["activity_date"] = activity_date or None
        return cleaned

    def _step_evidence(self, payload: dict) -> dict:
        cleaned = {"text_notes": payload.get("text_notes") or None}
        for key in COUNT_FIELDS:
            value = payload.get(key, 0)
            if not isinstance(value, int) or value < 0:
                raise WizardError(f"{key} must be a non-negative integer")
            cleaned[key] = value
        return cleaned

    def _step_location(self, payload: dict) -> dict:
        lat = payload.get("location_lat")
        lng = payload.get("location_lng")
        if (lat is None) != (lng is None):
            raise WizardError("Give both latitude and longitude, or neither")
        if lat is not None:
            if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
                raise WizardError("Coordinates must be numbers")
            if not (-90 <= lat <= 90 and -180 <= lng <= 180):
                raise WizardError("Coordinates out of range")
        return {"location_lat": lat, "location_lng": lng}
