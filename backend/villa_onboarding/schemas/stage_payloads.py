"""
Stage Payload Schemas — One pydantic model per stage, generated from the catalog.

Incoming step payloads are parsed through the model for their stage number, so
only declared fields reach the engine. Values stay loosely typed here; type and
range checks live in the validation service where they can be reported per field.
"""
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, create_model

from villa_onboarding.catalog import STAGES, get_stage


class StagePayload(BaseModel):
    """Base for generated stage payloads. Undeclared keys are dropped."""

    class Config:
        extra = "ignore"

    stage_number: int = 0

    def declared_values(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, keyed by field name."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name != "stage_number"
        }


def _build_payload_model(stage) -> Type[StagePayload]:
    field_specs = {f.name: (Optional[Any], None) for f in stage.fields}
    model_name = "".join(part.capitalize() for part in stage.key.split("_")) + "Payload"
    return create_model(
        model_name,
        __base__=StagePayload,
        stage_number=(int, stage.number),
        **field_specs,
    )


STAGE_PAYLOAD_MODELS: Dict[int, Type[StagePayload]] = {
    stage.number: _build_payload_model(stage) for stage in STAGES
}


def parse_stage_payload(stage_number: int, data: Optional[Dict[str, Any]]) -> StagePayload:
    """Parse a raw step payload into the typed model for that stage."""
    stage = get_stage(stage_number)
    model = STAGE_PAYLOAD_MODELS[stage.number]
    raw = {k: v for k, v in (data or {}).items() if k != "stage_number"}
    return model.model_validate(raw)
