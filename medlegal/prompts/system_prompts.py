# System and user prompts for the medical-record analysis pipeline.
# Every prompt that expects structured output is sent with JSON response mode.

# =============================================================================
# DOCUMENT ANALYSIS PROMPT
# =============================================================================
DOCUMENT_ANALYSIS_SYSTEM_PROMPT = r"""
You are a medical-legal analyst supporting a personal-injury law firm.
You read medical records, bills and correspondence and extract facts that
matter for building an injury claim.

Rules:
- Return strict JSON only, no commentary.
- Use exact names, dates, codes and amounts as written in the document.
- Never invent facts. Omit a field when the document does not mention it.
- Dates in ISO format (YYYY-MM-DD) when the document gives a full date.
- Amounts as plain numbers without currency symbols or thousands separators.
"""

DOCUMENT_ANALYSIS_PROMPT = r"""
Analyze this medical/legal document and extract comprehensive information.

Document: {file_name}
Content:
{content}

Return a JSON object with this structure:
{{
  "summary": "Detailed summary of the document for case preparation",
  "extractedData": {{
    "patientInfo": {{
      "name": "", "dateOfBirth": "", "gender": "", "address": "",
      "insurance": "", "incidentDate": ""
    }},
    "medicalInfo": {{
      "diagnoses": [{{"code": "ICD-10 code if given", "narrative": ""}}],
      "procedures": [{{"code": "CPT code if given", "description": ""}}],
      "diagnosticTests": [{{"name": "", "results": "", "significance": ""}}],
      "treatmentRecommendations": [""]
    }},
    "painSymptomReports": {{
      "painScaleEntries": [{{"date": "", "score": 0, "location": ""}}],
      "functionalLimitations": [""],
      "subjectiveComplaints": [""]
    }},
    "timeline": [
      {{"date": "", "type": "visit|test|procedure|incident", "facility": "", "narrative": "", "cost": 0}}
    ],
    "providerInfo": {{
      "providers": [{{"name": "", "specialty": "", "contact": ""}}],
      "facilities": [""]
    }},
    "billingFinancials": {{
      "serviceCharges": [{{"service": "", "date": "", "amount": 0}}],
      "outstandingBalance": 0,
      "adjustments": [],
      "duplicateCharges": []
    }},
    "prognosisFutureCare": {{
      "prognosis": "", "futureTreatment": [""], "estimatedFutureCosts": 0
    }},
    "complicationsNotes": {{
      "complications": [""], "notes": [""]
    }}
  }},
  "keyFindings": ["Critical findings for legal case preparation"]
}}

Order timeline events chronologically. Leave out any branch the document does not cover.
"""

# =============================================================================
# BILL LINE-ITEM EXTRACTION PROMPT
# =============================================================================
BILL_LINE_ITEMS_PROMPT = r"""
Extract every medical bill or charge line item from this document.

Document: {file_name}
Content:
{content}

Return a JSON object: {{"bills": [ ... ]}} where each bill is:
{{
  "provider": "Billing provider or facility name",
  "amount": 0.00,
  "serviceDate": "YYYY-MM-DD",
  "billDate": "YYYY-MM-DD",
  "treatment": "Service or treatment description",
  "insurance": "Insurance carrier if shown"
}}

Return {{"bills": []}} when the document contains no charges.
"""

# =============================================================================
# DEMAND LETTER PROMPT
# =============================================================================
DEMAND_LETTER_PROMPT = r"""
Generate a professional demand letter for this personal-injury case.

Case facts:
{case_facts}

The letter must include a case summary, medical findings, itemized financial
damages, the legal basis for the claim and a settlement demand, written in
professional legal language.
"""

CONNECTION_TEST_PROMPT = "Reply with the single word: OK"
