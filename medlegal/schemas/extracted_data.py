"""Pydantic schemas for the structured data the LLM extracts from medical records.

The model controls the JSON shape, so every branch and every field is
optional and unknown keys are preserved. ``normalize_extracted_data`` checks
each branch against these schemas, logs deviations and keeps the data either
way; a malformed branch is never a reason to fail an analysis.
"""

from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

Scalar = Union[str, int, float]


class ExtractedBaseModel(BaseModel):
    """Base model for all extracted branches with shared config."""
    model_config = ConfigDict(
        from_attributes=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class PatientInfo(ExtractedBaseModel):
    name: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    insurance: Optional[str] = None
    incident_date: Optional[str] = None


class Diagnosis(ExtractedBaseModel):
    code: Optional[str] = None
    narrative: Optional[str] = None


class Procedure(ExtractedBaseModel):
    code: Optional[str] = None
    description: Optional[str] = None


class DiagnosticTest(ExtractedBaseModel):
    name: Optional[str] = None
    results: Optional[str] = None
    significance: Optional[str] = None


class MedicalInfo(ExtractedBaseModel):
    diagnoses: Optional[List[Union[Diagnosis, str]]] = None
    procedures: Optional[List[Union[Procedure, str]]] = None
    diagnostic_tests: Optional[List[Union[DiagnosticTest, str]]] = None
    treatment_recommendations: Optional[List[str]] = None


class PainScaleEntry(ExtractedBaseModel):
    date: Optional[str] = None
    score: Optional[Scalar] = None
    location: Optional[str] = None


class PainSymptomReports(ExtractedBaseModel):
    pain_scale_entries: Optional[List[Union[PainScaleEntry, str]]] = None
    functional_limitations: Optional[List[str]] = None
    subjective_complaints: Optional[List[str]] = None


class TimelineEvent(ExtractedBaseModel):
    date: Optional[str] = None
    type: Optional[str] = None
    facility: Optional[str] = None
    narrative: Optional[str] = None
    cost: Optional[Scalar] = None


class ProviderInfo(ExtractedBaseModel):
    providers: Optional[List[Union[Dict[str, Any], str]]] = None
    facilities: Optional[List[str]] = None


class ServiceCharge(ExtractedBaseModel):
    service: Optional[str] = None
    date: Optional[str] = None
    amount: Optional[Scalar] = None


class BillingFinancials(ExtractedBaseModel):
    service_charges: Optional[List[Union[ServiceCharge, str]]] = None
    outstanding_balance: Optional[Scalar] = None
    adjustments: Optional[List[Union[Dict[str, Any], str]]] = None
    duplicate_charges: Optional[List[Union[Dict[str, Any], str]]] = None


class PrognosisFutureCare(ExtractedBaseModel):
    prognosis: Optional[str] = None
    future_treatment: Optional[List[str]] = None
    estimated_future_costs: Optional[Scalar] = None


class ComplicationsNotes(ExtractedBaseModel):
    complications: Optional[List[str]] = None
    notes: Optional[List[str]] = None


BRANCH_SCHEMAS: Dict[str, Type[ExtractedBaseModel]] = {
    "patientInfo": PatientInfo,
    "medicalInfo": MedicalInfo,
    "painSymptomReports": PainSymptomReports,
    "providerInfo": ProviderInfo,
    "billingFinancials": BillingFinancials,
    "prognosisFutureCare": PrognosisFutureCare,
    "complicationsNotes": ComplicationsNotes,
}


def _check_timeline(value: Any) -> Any:
    if not isinstance(value, list):
        raise TypeError(f"expected a list of events, got {type(value).__name__}")
    normalized = []
    for item in value:
        if isinstance(item, dict):
            normalized.append(
                TimelineEvent.model_validate(item).model_dump(by_alias=True, exclude_unset=True)
            )
        else:
            normalized.append(item)
    return normalized


def normalize_extracted_data(raw: Any, document_id: Optional[str] = None) -> Dict[str, Any]:
    """Validate the extracted-data branches, logging any deviation from the schema.

    Args:
        raw: Parsed ``extractedData`` value returned by the model
        document_id: Used only for log context

    Returns:
        Dict keyed by camelCase branch names. Valid branches are re-serialized,
        invalid branches are kept as returned and reported in the logs.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        LOGGER.warning(
            "extractedData is not an object, discarding",
            extra={"document_id": document_id, "type": type(raw).__name__}
        )
        return {}

    result: Dict[str, Any] = {}
    deviations: Dict[str, str] = {}

    for key, value in raw.items():
        if value is None:
            result[key] = value
            continue

        try:
            if key in BRANCH_SCHEMAS:
                model = BRANCH_SCHEMAS[key].model_validate(value)
                result[key] = model.model_dump(by_alias=True, exclude_unset=True)
            elif key == "timeline":
                result[key] = _check_timeline(value)
            elif key == "keyFindings":
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise TypeError("expected a list of strings")
                result[key] = value
            else:
                deviations[key] = "unknown branch"
                result[key] = value
        except (ValidationError, TypeError) as e:
            deviations[key] = str(e)[:300]
            result[key] = value

    if deviations:
        LOGGER.warning(
            "extractedData deviates from the expected shape",
            extra={"document_id": document_id, "deviations": deviations}
        )

    return result
